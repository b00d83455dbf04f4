"""
Per-guild case ledger.

Cases are created once, gain their mod-log ``message_id`` once, and are
never deleted. Index allocation happens inside a serialised write
transaction so indices stay gap-free and unique under concurrent use.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from casekeeper.database.db_connection import ConnectionManager
from casekeeper.datatypes.punishment_datatypes import Case, NewCase
from casekeeper.repositories.case_repo import CaseRepo
from casekeeper.util.logger import get_logger

logger = get_logger("case_ledger")


class CaseLedger:
    """Records and looks up cases through a shared :class:`ConnectionManager`."""

    def __init__(self, db: ConnectionManager) -> None:
        self._db = db

    async def record(self, new_case: NewCase, conn: Optional[aiosqlite.Connection] = None) -> Case:
        """Persist ``new_case`` under the next free index of its guild.

        Args:
            new_case: Case fields without an index.
            conn: Connection of an already open write transaction. When
                given, the case is written as part of that transaction.
        """
        if conn is not None:
            case = await CaseRepo.insert(conn, new_case)
        else:
            async with self._db.transaction() as tx:
                case = await CaseRepo.insert(tx, new_case)

        logger.info(
            "[CASES] Recorded case #%d (%s) in guild %s against %s",
            case.index, case.type.value, case.guild_id, case.victim_id,
        )
        return case

    async def get(self, guild_id: int, index: int) -> Optional[Case]:
        async with self._db.read() as conn:
            return await CaseRepo.get(conn, guild_id, index)

    async def list_for_member(self, guild_id: int, victim_id: int, limit: int = 25) -> List[Case]:
        async with self._db.read() as conn:
            return await CaseRepo.list_for_member(conn, guild_id, victim_id, limit)

    async def attach_message(self, case: Case, message_id: int) -> bool:
        """Store the mod-log message id on a case if it has none yet."""
        async with self._db.transaction() as conn:
            updated = await CaseRepo.set_message_id(conn, case.guild_id, case.index, message_id)
        if updated:
            case.message_id = message_id
        else:
            logger.debug("[CASES] Case #%d in guild %s already has a message", case.index, case.guild_id)
        return updated

    async def update_reason(self, guild_id: int, index: int, reason: Optional[str]) -> Optional[Case]:
        """Rewrite a case reason and return the updated case, or None if it does not exist."""
        async with self._db.transaction() as conn:
            if not await CaseRepo.update_reason(conn, guild_id, index, reason):
                return None
            return await CaseRepo.get(conn, guild_id, index)

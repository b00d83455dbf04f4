"""
casekeeper - Discord Moderation Bot with a Case Ledger

casekeeper applies punishments, numbers every moderation action as a
per-guild case and posts those cases to a mod-log channel.

Core Components:

- **Punishment Executor**: Bans, kicks, mutes, voice and thread-messaging
  restrictions, with timed reversals that survive restarts
- **Case Ledger**: Sequential, gap-free case numbers per guild
- **Warnings**: Warning totals with configurable threshold punishments
- **Mod-Log**: Embeds for every case, editable with ``/reason``
- **Automod**: Spam, raid, phishing, blacklist, dehoist, message-link and
  shortlink detectors, toggled per guild

Usage:
    from casekeeper.main import main
    main()
"""

"""Command-line interface for SplitSmart.

Usage:
    splitsmart sessions | new [name] | switch <id> | rename <id> <name> | delete <id>
    splitsmart upload <image> | append <image>
    splitsmart chat <text>
    splitsmart show | summary | reset
    splitsmart add-item | edit-item <id> | delete-item <id>
    splitsmart assign <id> <person> | weight <id> <person> <delta>
    splitsmart tax <amount> [--percent] | tip <amount> [--percent]
    splitsmart tag-dietary | roast
    splitsmart friends [add|remove <name>] | theme [light|dark]
    splitsmart serve [--host] [--port]
"""

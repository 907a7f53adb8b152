"""
Studio Sync CLI - command-line access to a studio's ordered lists.

Commands:
- config: Configure the server, studio and reconciliation settings
- groups: List and reorder groups (event types)
- entities: List, reorder, move, feature and publish records
- tasks: Complete or reopen scheduler tasks
"""

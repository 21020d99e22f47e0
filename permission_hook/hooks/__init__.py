"""Hook event handling.

``PreToolUse`` events go through the command parser, the inline script
scanner and the permission classifier.  ``Stop``, ``SubagentStop`` and
``Notification`` events go through the transcript reader and the status
analyzer, then the question cooldown (session state) and the dedup
coordinator before a notifier sees them.

``dispatcher.dispatch`` is the single entry point used by the CLI.
"""

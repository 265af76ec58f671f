"""FTP protocol module for ftpsession.

This module handles all FTP-related functionality:
- FTPSession: Session state machine and public operations
- ControlConnection: Command/reply exchange over the control stream
- ReplyParser: Multi-line reply framing
- DataChannel: Passive/active data connection negotiation
- TransferEngine: Block-wise transfer with ASCII line-ending conversion
- Exceptions: FTP-specific error types
"""

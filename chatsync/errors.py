# chatsync/errors.py


class ChatSyncError(Exception):
    status_code = 500
    public_message = "Internal server error"


class NotFoundError(ChatSyncError):
    status_code = 404
    public_message = "Not found"

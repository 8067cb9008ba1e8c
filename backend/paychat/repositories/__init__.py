from .chat_repository import (
    NewMessageFile,
    add_message,
    add_message_files,
    commit,
    count_chat_messages,
    create_chat,
    delete_chat,
    get_or_create_user,
    get_owned_chat,
    get_user_by_wallet,
    list_chat_messages,
    list_user_chats,
    record_api_usage,
    record_transaction,
    update_chat_title,
)

__all__ = [
    "NewMessageFile",
    "add_message",
    "add_message_files",
    "commit",
    "count_chat_messages",
    "create_chat",
    "delete_chat",
    "get_or_create_user",
    "get_owned_chat",
    "get_user_by_wallet",
    "list_chat_messages",
    "list_user_chats",
    "record_api_usage",
    "record_transaction",
    "update_chat_title",
]

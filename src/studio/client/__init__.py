# --- studio-stream ---
from .api import ApiError, BackendClient, ChatApi, ChatReply
from .conversation import Conversation, Message
from .handoff import HandoffRelay, HandoffSlot
from .views import BrowsingContext, ChatView, ComposerView

__all__ = [
    "ApiError",
    "BackendClient",
    "ChatApi",
    "ChatReply",
    "Conversation",
    "Message",
    "HandoffRelay",
    "HandoffSlot",
    "BrowsingContext",
    "ChatView",
    "ComposerView",
]

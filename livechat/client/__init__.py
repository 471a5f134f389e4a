from .api import ApiError, LiveChatAPI
from .controller import ChatController, ChatState, ChatView, SessionState
from .storage import LocalStorage, MemoryStorage

from .manager import WaitingListManager

__all__ = ["WaitingListManager"]

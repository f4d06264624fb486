from .client import IMAPClient, ImapState

__all__ = ['IMAPClient', 'ImapState']

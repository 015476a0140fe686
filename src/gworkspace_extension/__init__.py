"""Google Workspace extension for agent runtimes.

Exposes Gmail, Drive, Docs, Sheets, Slides, Calendar, Chat and People APIs
behind a single OAuth 2.0 session whose credentials are kept in the OS
keychain, or in an AES-GCM encrypted file when no keychain is available.
"""

from gworkspace_extension.__version__ import __version__

__all__ = ["__version__"]

"""
FTP session client with an example command-line program
"""

from .core import *  # noqa: F401,F403
from .core import __all__

__version__ = '1.0.0'

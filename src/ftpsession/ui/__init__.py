"""
User Interface module
Provides the command-line front end for the FTP client
"""

from .cli import CLIInterface, HashPrinter

__all__ = ['CLIInterface', 'HashPrinter']

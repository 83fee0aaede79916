"""QUILL identity constants."""

__version__ = "0.1.0"
__codename__ = "QUILL"
__tagline__ = "Step-bounded coding agent for your terminal"

BANNER = r"""
   ____  _    _ _____ _      _
  / __ \| |  | |_   _| |    | |
 | |  | | |  | | | | | |    | |
 | |__| | |__| |_| |_| |____| |____
  \___\_\\____/|_____|______|______|
"""

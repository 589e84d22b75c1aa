"""
Resource Naming

Maps names supplied by the peer to local file names before anything
touches the file system.

Rules (applied in order):
1. Keep only the text after the last '/' or '\\'
2. Anything still containing '..' becomes 'unsafe'
3. An empty name becomes 'file'

That is the whole defense against path traversal: there is no extension
allow-list and no quota here.
"""

import re
from pathlib import Path
from typing import Union

UNSAFE_NAME = 'unsafe'
EMPTY_NAME = 'file'

_SEPARATORS = re.compile(r'[/\\]')


def safe_name(name: str) -> str:
    """
    Reduce a peer-supplied name to a bare local file name.

    >>> safe_name('a/b/report.txt')
    'report.txt'
    >>> safe_name('../../etc/passwd')
    'unsafe'
    """
    name = _SEPARATORS.split(name)[-1]
    if '..' in name:
        return UNSAFE_NAME
    if not name:
        return EMPTY_NAME
    return name


def resolve_resource(name: str, root: Union[str, Path]) -> Path:
    """Resolve a peer-supplied name to a path directly inside ``root``."""
    return Path(root) / safe_name(name)

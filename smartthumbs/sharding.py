"""
Sharding - Deterministic subdirectory layouts for derived files.

Each strategy maps a sanitized filename to a relative directory prefix ending
in '/' (or the empty string), bounding how many files land in one directory.
"""

import hashlib
import logging
import re
from datetime import datetime
from typing import Callable, Dict, Optional

Clock = Callable[[], datetime]
ShardStrategy = Callable[[str, Clock], str]

DEFAULT_STRATEGY = 'hash_prefix'

_NON_ALNUM_RE = re.compile(r'[^a-z0-9]')


def _md5_hex(filename: str) -> str:
    return hashlib.md5(filename.encode('utf-8')).hexdigest()


def hash_prefix(filename: str, clock: Optional[Clock] = None) -> str:
    """Two levels from the MD5 of the filename: 'a/b/'."""
    digest = _md5_hex(filename)
    return f"{digest[0]}/{digest[1]}/"


def hash_levels(filename: str, clock: Optional[Clock] = None) -> str:
    """Three levels from the MD5 of the filename: 'a/b/c/'."""
    digest = _md5_hex(filename)
    return f"{digest[0]}/{digest[1]}/{digest[2]}/"


def filename_prefix(filename: str, clock: Optional[Clock] = None) -> str:
    """First two alphanumerics of the lower-cased name, or 'misc/'."""
    clean = _NON_ALNUM_RE.sub('', filename.lower())
    if len(clean) < 2:
        return 'misc/'
    return f"{clean[0]}/{clean[1]}/"


def date_based(filename: str, clock: Optional[Clock] = None) -> str:
    """Current date as 'YYYY/MM/DD/'."""
    now = (clock or datetime.now)()
    return now.strftime('%Y/%m/%d/')


def no_shard(filename: str, clock: Optional[Clock] = None) -> str:
    return ''


STRATEGIES: Dict[str, ShardStrategy] = {
    'hash_prefix': hash_prefix,
    'hash_levels': hash_levels,
    'filename_prefix': filename_prefix,
    'date_based': date_based,
    'none': no_shard,
}


def is_valid_strategy(name: str) -> bool:
    return name in STRATEGIES


def shard_for(
    filename: str,
    strategy: str,
    clock: Optional[Clock] = None,
    logger: Optional[logging.Logger] = None
) -> str:
    """
    Compute the shard directory for a filename.

    Unknown strategy names produce no shard. A strategy that raises falls back
    to hash_prefix, and to no shard if that fails as well.

    Args:
        filename: Sanitized filename stem
        strategy: Strategy name (see STRATEGIES)
        clock: Optional clock for date_based, defaults to datetime.now
        logger: Optional logger instance

    Returns:
        Relative directory prefix ending in '/', or ''
    """
    logger = logger or logging.getLogger(__name__)
    func = STRATEGIES.get(strategy, no_shard)
    try:
        return func(filename, clock)
    except Exception as e:
        logger.warning(f"Subdirectory strategy '{strategy}' failed for {filename}: {e}")
        if strategy == DEFAULT_STRATEGY:
            return ''
        try:
            return hash_prefix(filename)
        except Exception as fallback_error:
            logger.error(f"hash_prefix fallback failed for {filename}: {fallback_error}")
            return ''

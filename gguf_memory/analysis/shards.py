# gguf_memory/analysis/shards.py
"""
Shard resolution: split-model filename detection, concurrent size discovery and
cross-checks between the filename layout and the ``split.*`` metadata keys.
"""

from __future__ import annotations

import os
import posixpath
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Iterable, List, Optional

import httpx
from loguru import logger

from gguf_memory.analysis.base import ShardDescriptor
from gguf_memory.config import DEFAULT_CONFIG, EstimatorConfig
from gguf_memory.errors import EstimationCancelled, InconsistentShardCountError
from gguf_memory.io.sources import is_remote, open_source
from gguf_memory.model_formats.gguf.gguf import MetadataStore
from gguf_memory.model_formats.gguf.gguf_rules import SPLIT_COUNT_KEY, SPLIT_INDEX_KEY, read_int

# <name>-00001-of-00003.gguf
SHARD_PATTERN = re.compile(r"^(?P<stem>.+)-(?P<index>\d{5})-of-(?P<total>\d{5})(?P<ext>\.[^.]+)$")


@dataclass(frozen=True)
class ShardName:
    """Parsed ``<stem>-<index>-of-<total><ext>`` file name."""

    stem: str
    index: int
    total: int
    ext: str

    def filename(self, index: int) -> str:
        return f"{self.stem}-{index:05d}-of-{self.total:05d}{self.ext}"


def parse_shard_name(filename: str) -> Optional[ShardName]:
    """Return the shard fields of ``filename``, or None for a single-file model."""
    m = SHARD_PATTERN.match(filename)
    if not m:
        return None
    name = ShardName(m.group("stem"), int(m.group("index")), int(m.group("total")), m.group("ext"))
    if name.total < 1 or not 1 <= name.index <= name.total:
        raise InconsistentShardCountError(
            f"Shard file name {filename!r} has index {name.index} outside 1..{name.total}"
        )
    return name


def _split_locator(locator: str) -> tuple[str, str]:
    if is_remote(locator):
        path = httpx.URL(locator).path
        return posixpath.dirname(path), posixpath.basename(path)
    return os.path.dirname(locator), os.path.basename(locator)


def _with_filename(locator: str, filename: str) -> str:
    if is_remote(locator):
        url = httpx.URL(locator)
        return str(url.copy_with(path=posixpath.join(posixpath.dirname(url.path), filename)))
    return os.path.join(os.path.dirname(locator), filename)


def shard_locators(locator: str) -> List[str]:
    """All shard locators of the model ``locator`` belongs to, ordered by index."""
    _, filename = _split_locator(locator)
    name = parse_shard_name(filename)
    if name is None:
        return [locator]
    return [_with_filename(locator, name.filename(i)) for i in range(1, name.total + 1)]


def total_model_bytes(shards: Iterable[ShardDescriptor]) -> int:
    return sum(s.byte_size for s in shards)


class ShardResolver:
    """Enumerates the shards of a model and discovers their sizes concurrently."""

    def __init__(
        self,
        locator: str,
        config: EstimatorConfig = DEFAULT_CONFIG,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.locator = locator
        self.config = config
        self.cancel_event = cancel_event
        self.locators = shard_locators(locator)
        self.total = len(self.locators)

    @property
    def metadata_locator(self) -> str:
        """Shard 1 carries the authoritative metadata."""
        return self.locators[0]

    def _describe(self, index: int, locator: str) -> ShardDescriptor:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise EstimationCancelled(f"Cancelled before sizing shard {index}/{self.total}")
        with open_source(locator, self.config, self.cancel_event) as src:
            size = src.size()
        logger.debug("Shard {i}/{n} {loc}: {size} bytes", i=index, n=self.total, loc=locator, size=size)
        return ShardDescriptor(index=index, total=self.total, byte_size=size, locator=locator)

    def discover(self, known: Iterable[ShardDescriptor] = ()) -> List[ShardDescriptor]:
        """Resolve every shard's size; ``known`` descriptors are reused as-is.

        The first failure cancels pending lookups and propagates.
        """
        found = {d.index: d for d in known}
        pending = [(i, loc) for i, loc in enumerate(self.locators, start=1) if i not in found]
        if pending:
            pool = ThreadPoolExecutor(
                max_workers=min(self.config.max_workers, len(pending)),
                thread_name_prefix="shard-size",
            )
            try:
                futures = [pool.submit(self._describe, i, loc) for i, loc in pending]
                for fut in as_completed(futures):
                    d = fut.result()
                    found[d.index] = d
            except BaseException:
                pool.shutdown(wait=True, cancel_futures=True)
                raise
            pool.shutdown(wait=True)
        shards = [found[i] for i in sorted(found)]
        logger.info(
            "Resolved {n} shard(s), {size} bytes total",
            n=len(shards),
            size=total_model_bytes(shards),
        )
        return shards

    def check_metadata(self, store: MetadataStore) -> List[str]:
        """Cross-check ``split.*`` keys against the file names; return assumptions.

        Raises:
            InconsistentShardCountError: metadata and file names disagree.
        """
        assumptions: List[str] = []
        declared = read_int(store, SPLIT_COUNT_KEY)[0] if SPLIT_COUNT_KEY in store else None
        if declared is None:
            assumptions.append(
                f"{SPLIT_COUNT_KEY} not present; shard count {self.total} taken from the file name"
            )
        elif declared != self.total:
            raise InconsistentShardCountError(
                f"{self.metadata_locator}: {SPLIT_COUNT_KEY}={declared} but the file name "
                f"implies {self.total} shard(s)"
            )
        split_no = read_int(store, SPLIT_INDEX_KEY)[0] if SPLIT_INDEX_KEY in store else None
        if split_no is not None and split_no != 0:
            raise InconsistentShardCountError(
                f"{self.metadata_locator}: {SPLIT_INDEX_KEY}={split_no}, expected 0 for the first shard"
            )
        if self.total > 1:
            assumptions.append(
                f"All {self.total} shards assumed to share the architecture read from shard 1"
            )
        return assumptions

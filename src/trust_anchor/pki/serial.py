"""
CA 序列号分配器。
每个 CA 持有一个独立的分配器实例；分配过程由互斥锁保护，保证并发签发时序列号不重复。
指定 path 时，下一个可用序列号以十六进制（与 OpenSSL 的 ca.srl 相同）持久化。
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

from loguru import logger

from .errors import ExternalToolError


class SerialAllocator:
    """单调递增的序列号计数器。"""

    def __init__(self, path: str | os.PathLike[str] | None = None, start: int = 1):
        if start < 1:
            raise ValueError("序列号必须为正整数")
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._next = self._load(start)

    @property
    def path(self) -> Path | None:
        return self._path

    def _load(self, start: int) -> int:
        if self._path is None or not self._path.exists():
            return start
        text = self._path.read_text(encoding="utf-8").strip()
        try:
            value = int(text, 16)
        except ValueError:
            # 重置计数器可能导致序列号复用，宁可失败
            raise ExternalToolError(f"序列号文件已损坏: {self._path}")
        if value < 1:
            raise ExternalToolError(f"序列号文件内容无效: {self._path}")
        return value

    def _persist(self, value: int) -> None:
        if self._path is None:
            return
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(f"{value:X}\n", encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            logger.error(f"写入序列号文件失败: {e}")
            raise ExternalToolError(f"无法持久化序列号: {self._path}") from e

    def peek(self) -> int:
        """返回下一个将被分配的序列号，不消耗。"""
        with self._lock:
            return self._next

    def allocate(self) -> int:
        """分配一个新的序列号，并在持久化成功后才返回。"""
        with self._lock:
            serial = self._next
            self._persist(serial + 1)
            self._next = serial + 1
        logger.debug(f"分配序列号: {serial:X}")
        return serial

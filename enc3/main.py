# ENC3 RECOVERY ENGINE ->

import os as _os_module

from .errors import (
    BackupFailedError,
    BadMagicError,
    BruteForceExhaustedError,
    ChecksumMismatchError,
    ContainerFormatError,
    DecodeError,
    DecompressionFailedError,
    Enc3Error,
    IOReadFailedError,
    IOWriteFailedError,
    TooShortError,
    TruncatedPayloadError,
)


def _available_parallelism() -> int:
    # CPUs this process may run on, which can be fewer than the machine has.
    if hasattr(_os_module, "sched_getaffinity"):
        return max(1, len(_os_module.sched_getaffinity(0)))
    return max(1, _os_module.cpu_count() or 1)


class enc3:
    import collections
    import concurrent.futures
    import pathlib
    import shutil
    import struct
    import sys
    import threading
    import time
    import typing
    import zlib
    import numpy as np
    import colorama

    ENGINE_VERSION = "1.0.0"
    MAGIC = b"ENC3"
    HEADER_SIZE = 24
    # magic, key, compressed size, plain size, adler32
    HEADER_STRUCT = struct.Struct("<4sQIII")
    WORD_MASK = 0xFFFFFFFF
    KEY_SCHEDULE_TAIL = (0x1A2B3C4D, 0xD1F2E3C4)
    DEFAULT_DELTA = 0x9E3779B9
    # Tried in this order after the preferred delta.
    CANDIDATE_DELTAS = (
        0x9E3779B8,
        0x9E3779BA,
        0x61C88647,
        0x12345678,
        0x87654321,
        0xDEADBEEF,
        0xCAFEBABE,
        0x00000000,
        0xFFFFFFFF,
        0x000018EF,
        0x12E3F4A5,
    )
    BACKUP_SUFFIX = ".backup"
    POLL_INTERVAL = 0.1
    REPORT_INTERVAL = 2.0
    DEFAULT_SCAN_DIRS = ("data", "modules", "mods", "layouts")
    DEFAULT_INIT_FILE = "init.lua"
    EXCLUDE_MARKERS = ("game_bot", "default_config")
    OUTCOMES = ("succeeded", "failed", "skipped")
    _CPU_COUNT = _available_parallelism()

    class EncryptedContainer(typing.NamedTuple):
        magic: bytes
        key: int
        compressed_size: int
        plain_size: int
        checksum: int
        payload: bytes

    class _Console:
        """Serialises status and diagnostic lines coming from concurrent workers."""

        def __init__(self, silent: bool = False, stream=None, err_stream=None):
            self.silent = silent
            self._stream = stream
            self._err_stream = err_stream
            self._lock = enc3.threading.Lock()

        @property
        def stream(self):
            return self._stream or enc3.sys.stdout

        @property
        def err_stream(self):
            return self._err_stream or enc3.sys.stderr

        @staticmethod
        def _paint(stream, text: str, color: "enc3.typing.Optional[str]") -> str:
            if not color or not bool(getattr(stream, "isatty", lambda: False)()):
                return text
            return f"{color}{text}{enc3.colorama.Style.RESET_ALL}"

        def _emit(self, stream, text: str, color: "enc3.typing.Optional[str]" = None, end: str = "\n") -> None:
            if self.silent:
                return
            with self._lock:
                stream.write(self._paint(stream, text, color) + end)
                stream.flush()

        def info(self, text: str) -> None:
            self._emit(self.stream, text)

        def success(self, text: str) -> None:
            self._emit(self.stream, text, enc3.colorama.Fore.GREEN)

        def error(self, text: str) -> None:
            self._emit(self.err_stream, text, enc3.colorama.Fore.RED)

        def status(self, text: str, *, final: bool = False) -> None:
            stream = self.stream
            if bool(getattr(stream, "isatty", lambda: False)()):
                # Redraw the same terminal line until the final summary.
                self._emit(stream, "\r" + text, enc3.colorama.Fore.GREEN if final else None, end="\n" if final else "")
            else:
                self._emit(stream, text)

    class _FileTaskQueue:
        """FIFO of pending paths, filled once before any worker starts."""

        def __init__(self, paths: "enc3.typing.Iterable[enc3.pathlib.Path]"):
            self._pending = enc3.collections.deque(paths)
            self._lock = enc3.threading.Lock()
            self.total = len(self._pending)

        def pop(self) -> "enc3.typing.Optional[enc3.pathlib.Path]":
            with self._lock:
                if not self._pending:
                    return None
                return self._pending.popleft()

        def empty(self) -> bool:
            with self._lock:
                return not self._pending

        def __len__(self) -> int:
            with self._lock:
                return len(self._pending)

    class _ProcessingStats:
        """Increment-only outcome counters shared by workers and the monitor."""

        def __init__(self, total: int):
            self.total = total
            self._lock = enc3.threading.Lock()
            self._counts = {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0}

        def record(self, outcome: str) -> None:
            if outcome not in enc3.OUTCOMES:
                raise ValueError(f"Unknown outcome '{outcome}'")
            with self._lock:
                self._counts[outcome] += 1
                self._counts["processed"] += 1

        def snapshot(self) -> "dict[str, int]":
            with self._lock:
                counts = dict(self._counts)
            counts["total"] = self.total
            return counts

    class _ProgressMonitor:
        """Polls the shared counters and prints a status line every few seconds."""

        def __init__(
            self,
            queue: "enc3._FileTaskQueue",
            stats: "enc3._ProcessingStats",
            console: "enc3._Console",
            *,
            poll_interval: float,
            report_interval: float
        ):
            self._queue = queue
            self._stats = stats
            self._console = console
            self._poll_interval = max(0.0, float(poll_interval))
            self._report_interval = max(0.0, float(report_interval))
            self._complete = enc3.threading.Event()
            self._abort = enc3.threading.Event()
            self._thread = enc3.threading.Thread(target=self._run, name="enc3-progress", daemon=True)

        @staticmethod
        def format_line(counts: "dict[str, int]") -> str:
            total = counts["total"]
            percent = (counts["processed"] / total * 100.0) if total else 100.0
            return (
                f"[PROGRESS] {counts['processed']}/{total} ({percent:.1f}%)"
                f" | Succeeded: {counts['succeeded']}"
                f" | Failed: {counts['failed']}"
                f" | Skipped: {counts['skipped']}"
            )

        @staticmethod
        def format_summary(counts: "dict[str, int]") -> str:
            return (
                f"[FINAL] Processed: {counts['processed']}/{counts['total']}"
                f" | Succeeded: {counts['succeeded']}"
                f" | Failed: {counts['failed']}"
                f" | Skipped: {counts['skipped']}"
            )

        def start(self) -> None:
            self._thread.start()

        def finish(self) -> None:
            self._complete.set()
            self._thread.join()

        def abort(self) -> None:
            self._abort.set()
            self._complete.set()
            self._thread.join()

        def _run(self) -> None:
            last_report = enc3.time.monotonic()
            # Both checks are snapshots; the counters stay authoritative.
            while not (self._complete.is_set() and self._queue.empty()):
                if self._abort.is_set():
                    return
                enc3.time.sleep(self._poll_interval)
                now = enc3.time.monotonic()
                if now - last_report >= self._report_interval:
                    last_report = now
                    self._console.status(self.format_line(self._stats.snapshot()))
            if not self._abort.is_set():
                self._console.status(self.format_summary(self._stats.snapshot()), final=True)

    @staticmethod
    def default_worker_count() -> int:
        """One worker per CPU, keeping one back for the monitor thread."""
        return max(1, enc3._CPU_COUNT - 1)

    @staticmethod
    def _normalize_path(path_like: "enc3.typing.Union[str, enc3.pathlib.Path]") -> "enc3.pathlib.Path":
        if isinstance(path_like, enc3.pathlib.Path):
            return path_like
        return enc3.pathlib.Path(_os_module.fspath(path_like))

    @staticmethod
    def _coerce_file_list(files) -> "enc3.typing.List[enc3.pathlib.Path]":
        if files is None:
            return []
        if isinstance(files, (str, _os_module.PathLike)):
            return [enc3._normalize_path(files)]
        return [enc3._normalize_path(item) for item in files]

    @staticmethod
    def is_container(data: bytes) -> bool:
        return len(data) >= enc3.HEADER_SIZE and bytes(data[:4]) == enc3.MAGIC

    @staticmethod
    def parse_container(buffer: bytes) -> "enc3.EncryptedContainer":
        """Parse the fixed little-endian header and copy out the payload.

        The payload is a fresh ``bytes`` object, so reversing the cipher over
        it never touches ``buffer``.
        """
        view = memoryview(buffer)
        if len(view) < enc3.HEADER_SIZE:
            raise TooShortError(f"container needs {enc3.HEADER_SIZE} header bytes, got {len(view)}")
        magic, key, compressed_size, plain_size, checksum = enc3.HEADER_STRUCT.unpack_from(view, 0)
        if magic != enc3.MAGIC:
            raise BadMagicError(f"expected magic {enc3.MAGIC!r}, found {magic!r}")
        available = len(view) - enc3.HEADER_SIZE
        if compressed_size > available:
            raise TruncatedPayloadError(
                f"payload declares {compressed_size} bytes but only {available} follow the header"
            )
        payload = bytes(view[enc3.HEADER_SIZE:enc3.HEADER_SIZE + compressed_size])
        return enc3.EncryptedContainer(magic, key, compressed_size, plain_size, checksum, payload)

    @staticmethod
    def _key_schedule(key: int) -> "tuple[int, int, int, int]":
        return (
            (key >> 32) & enc3.WORD_MASK,
            key & enc3.WORD_MASK,
            *enc3.KEY_SCHEDULE_TAIL,
        )

    @staticmethod
    def _bdecrypt(data: bytearray, key: int, delta: int) -> None:
        """Reverse the block mix in place over whole little-endian words.

        Trailing bytes that do not fill a word are left as they are, and a
        payload shorter than two words passes through unchanged.
        """
        n = len(data) // 4
        if n < 2:
            return
        mask = enc3.WORD_MASK
        k = enc3._key_schedule(key)
        delta &= mask
        v = enc3.np.frombuffer(data, dtype="<u4", count=n).tolist()
        rounds = 6 + 52 // n
        total = (rounds * delta) & mask
        y = v[0]
        for _ in range(rounds):
            e = (total >> 2) & 3
            for p in range(n - 1, 0, -1):
                z = v[p - 1]
                mx = (((z >> 5) ^ (y << 2)) + ((y >> 3) ^ (z << 4))) ^ ((total ^ y) + (k[(p & 3) ^ e] ^ z))
                y = v[p] = (v[p] - mx) & mask
            z = v[n - 1]
            mx = (((z >> 5) ^ (y << 2)) + ((y >> 3) ^ (z << 4))) ^ ((total ^ y) + (k[e] ^ z))
            y = v[0] = (v[0] - mx) & mask
            total = (total - delta) & mask
        data[:n * 4] = enc3.np.asarray(v, dtype="<u4").tobytes()

    @staticmethod
    def _inflate(payload: "enc3.typing.Union[bytes, bytearray]", plain_size: int) -> bytes:
        if not payload:
            if plain_size:
                raise DecompressionFailedError(f"empty payload cannot expand to {plain_size} bytes")
            return b""
        inflater = enc3.zlib.decompressobj()
        try:
            plain = inflater.decompress(bytes(payload), plain_size + 1)
        except enc3.zlib.error as exc:
            raise DecompressionFailedError(f"corrupt compressed stream: {exc}") from exc
        if len(plain) > plain_size:
            raise DecompressionFailedError(f"stream expands beyond the declared {plain_size} bytes")
        if not inflater.eof:
            raise DecompressionFailedError("compressed stream is truncated")
        if len(plain) != plain_size:
            raise DecompressionFailedError(f"stream produced {len(plain)} bytes, expected {plain_size}")
        return plain

    @staticmethod
    def decode_buffer(buffer: bytes, delta: int = DEFAULT_DELTA) -> bytes:
        """Decode one ENC3 container under a single delta.

        Pure: the caller's buffer is never modified, so a failed attempt can
        be retried with another delta against the same bytes.
        """
        container = enc3.parse_container(buffer)
        payload = bytearray(container.payload)
        enc3._bdecrypt(payload, container.key, delta)
        plain = enc3._inflate(payload, container.plain_size)
        actual = enc3.zlib.adler32(plain) & enc3.WORD_MASK
        if actual != container.checksum:
            raise ChecksumMismatchError(container.checksum, actual)
        return plain

    @staticmethod
    def delta_candidates(
            preferred_delta: int = DEFAULT_DELTA,
            candidates: "enc3.typing.Optional[enc3.typing.Iterable[int]]" = None
    ) -> "list[int]":
        ordered: "list[int]" = []
        pool = enc3.CANDIDATE_DELTAS if candidates is None else candidates
        for delta in (preferred_delta, *pool):
            delta &= enc3.WORD_MASK
            if delta not in ordered:
                ordered.append(delta)
        return ordered

    @staticmethod
    def try_decode(
            buffer: bytes,
            preferred_delta: int = DEFAULT_DELTA,
            candidates: "enc3.typing.Optional[enc3.typing.Iterable[int]]" = None
    ) -> "tuple[bytes, int]":
        """Try the preferred delta, then each candidate in order; first success wins."""
        attempts: "list[tuple[int, DecodeError]]" = []
        for delta in enc3.delta_candidates(preferred_delta, candidates):
            try:
                return enc3.decode_buffer(buffer, delta), delta
            except ContainerFormatError as exc:
                # Header problems are the same under every delta.
                attempts.append((delta, exc))
                break
            except DecodeError as exc:
                attempts.append((delta, exc))
        raise BruteForceExhaustedError(attempts)

    @staticmethod
    def backup_path_for(path: "enc3.typing.Union[str, enc3.pathlib.Path]") -> "enc3.pathlib.Path":
        path = enc3._normalize_path(path)
        return path.with_name(path.name + enc3.BACKUP_SUFFIX)

    @staticmethod
    def safe_replace(
            path: "enc3.typing.Union[str, enc3.pathlib.Path]",
            content: bytes,
            *,
            restore_on_failure: bool = False
    ) -> None:
        """Overwrite ``path`` with ``content`` behind a transient backup copy.

        On a failed write the backup stays next to the file. With
        ``restore_on_failure`` the backup is also copied back over ``path``.
        """
        path = enc3._normalize_path(path)
        backup = enc3.backup_path_for(path)
        try:
            enc3.shutil.copyfile(path, backup)
        except OSError as exc:
            raise BackupFailedError(f"cannot back up {path} to {backup.name}: {exc}") from exc
        try:
            path.write_bytes(content)
        except OSError as exc:
            if restore_on_failure:
                try:
                    enc3.shutil.copyfile(backup, path)
                except OSError as restore_exc:
                    raise IOWriteFailedError(
                        f"cannot write {path}: {exc}; restoring from {backup.name} failed: {restore_exc}"
                    ) from exc
            raise IOWriteFailedError(f"cannot write {path}: {exc} (backup kept at {backup.name})") from exc
        try:
            backup.unlink()
        except OSError as exc:
            raise BackupFailedError(f"decoded {path} but could not remove {backup.name}: {exc}") from exc

    @staticmethod
    def decrypt_file(
            path: "enc3.typing.Union[str, enc3.pathlib.Path]",
            *,
            preferred_delta: int = DEFAULT_DELTA,
            candidates: "enc3.typing.Optional[enc3.typing.Iterable[int]]" = None,
            restore_on_failure: bool = False
    ) -> "enc3.typing.Optional[int]":
        """Decode one file in place.

        Returns the delta that worked, or ``None`` when the file is not an
        ENC3 container and was left untouched.
        """
        path = enc3._normalize_path(path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise IOReadFailedError(f"cannot read {path}: {exc}") from exc
        if not enc3.is_container(data):
            return None
        plaintext, delta = enc3.try_decode(data, preferred_delta, candidates)
        enc3.safe_replace(path, plaintext, restore_on_failure=restore_on_failure)
        return delta

    @staticmethod
    def _process_task(
            path: "enc3.pathlib.Path",
            console: "enc3._Console",
            *,
            preferred_delta: int,
            candidates: "enc3.typing.Optional[enc3.typing.Sequence[int]]",
            restore_on_failure: bool
    ) -> str:
        try:
            delta = enc3.decrypt_file(
                path,
                preferred_delta=preferred_delta,
                candidates=candidates,
                restore_on_failure=restore_on_failure
            )
        except BruteForceExhaustedError as exc:
            kind = exc.last_error.kind if exc.last_error is not None else exc.kind
            console.error(f"FAILED: could not decrypt {path} ({exc.kind}; last: {kind})")
            return "failed"
        except Enc3Error as exc:
            console.error(f"ERROR: {exc.kind}: {exc}")
            return "failed"
        except KeyboardInterrupt:
            raise
        except Exception as exc:
            console.error(f"ERROR: unexpected failure on {path}: {exc}")
            return "failed"
        if delta is None:
            return "skipped"
        console.success(f"SUCCESS: {path.name} (delta: 0x{delta:08x})")
        return "succeeded"

    @staticmethod
    def decrypt_files(
            files,
            *,
            workers: "enc3.typing.Optional[int]" = None,
            preferred_delta: int = DEFAULT_DELTA,
            candidates: "enc3.typing.Optional[enc3.typing.Iterable[int]]" = None,
            restore_on_failure: bool = False,
            silent: bool = False,
            console: "enc3.typing.Optional[enc3._Console]" = None,
            poll_interval: "enc3.typing.Optional[float]" = None,
            report_interval: "enc3.typing.Optional[float]" = None
    ) -> "dict[str, int]":
        """Decode every path with a pool of worker threads.

        The queue is filled before the workers start; each path is taken by
        exactly one worker. Returns the final counters as a dict with the keys
        ``total``, ``processed``, ``succeeded``, ``failed`` and ``skipped``.
        """
        paths = enc3._coerce_file_list(files)
        console = console or enc3._Console(silent=silent)
        queue = enc3._FileTaskQueue(paths)
        stats = enc3._ProcessingStats(queue.total)
        if not paths:
            return stats.snapshot()
        if candidates is not None:
            candidates = tuple(candidates)
        worker_count = workers if workers is not None else enc3.default_worker_count()
        if worker_count < 1:
            raise ValueError("workers must be at least 1")
        worker_count = min(worker_count, queue.total)

        console.info(f"Starting with {worker_count} worker thread(s)")
        console.info(f"Total files: {queue.total}")

        def _worker() -> None:
            while True:
                path = queue.pop()
                if path is None:
                    return
                outcome = enc3._process_task(
                    path,
                    console,
                    preferred_delta=preferred_delta,
                    candidates=candidates,
                    restore_on_failure=restore_on_failure
                )
                stats.record(outcome)

        monitor = enc3._ProgressMonitor(
            queue,
            stats,
            console,
            poll_interval=enc3.POLL_INTERVAL if poll_interval is None else poll_interval,
            report_interval=enc3.REPORT_INTERVAL if report_interval is None else report_interval
        )
        monitor.start()
        try:
            with enc3.concurrent.futures.ThreadPoolExecutor(
                    max_workers=worker_count,
                    thread_name_prefix="enc3-worker"
            ) as executor:
                futures = [executor.submit(_worker) for _ in range(worker_count)]
                for future in enc3.concurrent.futures.as_completed(futures):
                    future.result()
        except BaseException:
            monitor.abort()
            raise
        monitor.finish()
        return stats.snapshot()

    @staticmethod
    def _is_excluded(path: "enc3.pathlib.Path") -> bool:
        text = str(path)
        return all(marker in text for marker in enc3.EXCLUDE_MARKERS)

    @staticmethod
    def _walk_files(
            directory: "enc3.pathlib.Path",
            console: "enc3.typing.Optional[enc3._Console]" = None
    ) -> "list[enc3.pathlib.Path]":
        console = console or enc3._Console()

        def _report(err: OSError) -> None:
            console.error(f"ERROR: cannot scan {err.filename}: {err}")

        found = []
        for root, _dirs, names in _os_module.walk(directory, onerror=_report):
            for name in names:
                candidate = enc3.pathlib.Path(root) / name
                if candidate.is_file():
                    found.append(candidate)
        return sorted(found)

    @staticmethod
    def collect_files(
            paths=None,
            *,
            root: "enc3.typing.Optional[enc3.typing.Union[str, enc3.pathlib.Path]]" = None,
            console: "enc3.typing.Optional[enc3._Console]" = None
    ) -> "list[enc3.pathlib.Path]":
        """Expand path arguments into a file list.

        Directories are walked recursively and missing paths are reported.
        Without arguments the default layout under ``root`` (the current
        directory by default) is scanned instead.
        """
        console = console or enc3._Console()
        requested = enc3._coerce_file_list(paths)
        files: "list[enc3.pathlib.Path]" = []
        if requested:
            for path in requested:
                if path.is_dir():
                    files.extend(enc3._walk_files(path, console))
                elif path.exists():
                    files.append(path)
                else:
                    console.error(f"ERROR: file or directory not found: {path}")
            return files

        base = enc3._normalize_path(root) if root is not None else enc3.pathlib.Path.cwd()
        console.info(f"Searching for files in: {base}")
        try:
            init_file = base / enc3.DEFAULT_INIT_FILE
            if init_file.is_file():
                files.append(init_file)
            for dir_name in enc3.DEFAULT_SCAN_DIRS:
                directory = base / dir_name
                if not directory.is_dir():
                    continue
                files.extend(path for path in enc3._walk_files(directory, console) if not enc3._is_excluded(path))
        except OSError as exc:
            console.error(f"ERROR: cannot scan {base}: {exc}")
        console.info(f"Found {len(files)} file(s) to process")
        return files


def _parse_delta(text: str) -> int:
    import argparse

    try:
        value = int(text, 0)
    except ValueError:
        try:
            value = int(text, 16)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid delta '{text}'") from None
    if not 0 <= value <= enc3.WORD_MASK:
        raise argparse.ArgumentTypeError(f"delta '{text}' does not fit in 32 bits")
    return value


def _parse_workers(text: str) -> int:
    import argparse

    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid worker count '{text}'") from None
    if value < 1:
        raise argparse.ArgumentTypeError("worker count must be at least 1")
    return value


def cli(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(prog="enc3", description="Recover plaintext from ENC3 containers in place")
    parser.add_argument(
        "paths",
        nargs="*",
        help="Files or directories to decode (default: init.lua plus data/, modules/, mods/, layouts/)"
    )
    parser.add_argument(
        "--delta",
        type=_parse_delta,
        default=enc3.DEFAULT_DELTA,
        help="Delta to try before the built-in candidates (hex, default 0x9e3779b9)"
    )
    parser.add_argument(
        "-w", "--workers",
        type=_parse_workers,
        default=None,
        help="Number of worker threads (default: CPU count minus one)"
    )
    parser.add_argument(
        "--root",
        default=None,
        help="Base directory for default discovery when no paths are given"
    )
    parser.add_argument(
        "--restore-on-failure",
        action="store_true",
        help="Copy the backup back over a file whose rewrite failed"
    )
    parser.add_argument(
        "-s", "--silent",
        action="store_true",
        help="Suppress all console output"
    )

    args = parser.parse_args(argv)

    enc3.colorama.just_fix_windows_console()
    console = enc3._Console(silent=args.silent)
    console.info("=== ENC3 File Decryptor ===")

    files = enc3.collect_files(args.paths, root=args.root, console=console)
    if not files:
        console.info("No files found to process.")
        return 0

    enc3.decrypt_files(
        files,
        workers=args.workers or enc3.default_worker_count(),
        preferred_delta=args.delta,
        restore_on_failure=args.restore_on_failure,
        console=console
    )
    console.info("Processing complete!")
    return 0


def main(argv=None) -> int:
    return cli(argv)


if __name__ == "__main__":
    raise SystemExit(main())

# _logging.py
from __future__ import annotations
import sys, datetime, json, re, threading
from collections import deque
from typing import Any, Deque, Dict, List, Mapping, Optional, TextIO

RESET = "\033[0m"
DIM = "\033[90m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[33m"
BLUE = "\033[94m"

LEVELS = {"silent": 60, "error": 40, "warn": 30, "info": 20, "debug": 10}
LEVEL_TAG = {"debug": "[debug]", "info": "[i]", "warn": "[!]", "error": "[!]", "success": "[✓]"}

ANSI_STRIP = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(s: str) -> str:
    return ANSI_STRIP.sub("", s)


class LogBuffer:
    """Per-tag ring buffer of plain log lines, read back by /api/logs."""
    def __init__(self, max_lines: int = 3000) -> None:
        self.max_lines = max_lines
        self._lines: Dict[str, Deque[str]] = {}
        self._lock = threading.Lock()

    def append(self, tag: str, line: str) -> None:
        with self._lock:
            buf = self._lines.setdefault(tag, deque(maxlen=self.max_lines))
            buf.append(strip_ansi(line.rstrip("\n")))

    def tail(self, tag: str, n: int = 200) -> List[str]:
        with self._lock:
            buf = list(self._lines.get(tag) or [])
        return buf[-n:] if n > 0 else buf

    def tags(self) -> List[str]:
        with self._lock:
            return sorted(self._lines.keys())

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()


class Logger:
    """Small stdout logger with tag/context binding, JSON file sink and ring buffer."""
    def __init__(
        self,
        stream: TextIO = sys.stdout,
        level: str = "info",
        use_color: bool = True,
        show_time: bool = True,
        time_fmt: str = "%Y-%m-%d %H:%M:%S",
        *,
        buffer: Optional[LogBuffer] = None,
        _context: Optional[Dict[str, Any]] = None,
        _json_stream: Optional[TextIO] = None,
        _lock: Optional[threading.Lock] = None,
    ):
        self.stream = stream
        self.level_no = LEVELS.get(level, 20)
        self.use_color = use_color
        self.show_time = show_time
        self.time_fmt = time_fmt
        self.buffer = buffer
        self._context: Dict[str, Any] = dict(_context or {})
        self._json_stream: Optional[TextIO] = _json_stream
        self._lock = _lock or threading.Lock()

    # ----- config
    def set_level(self, level: str) -> None:
        self.level_no = LEVELS.get(level, self.level_no)

    def enable_color(self, on: bool = True) -> None:
        self.use_color = on

    def enable_json(self, file_path: str) -> None:
        self._json_stream = open(file_path, "a", encoding="utf-8")

    def configure(self, runtime_cfg: Mapping[str, Any]) -> None:
        """Apply the `runtime` section of config.json."""
        self.set_level("debug" if runtime_cfg.get("debug") else "info")
        json_path = (runtime_cfg.get("log_json") or "").strip()
        if json_path and self._json_stream is None:
            self.enable_json(json_path)

    # ----- context
    def set_context(self, **ctx: Any) -> None:
        self._context.update(ctx)

    def get_context(self) -> Dict[str, Any]:
        return dict(self._context)

    def bind(self, **ctx: Any) -> "Logger":
        new_ctx = dict(self._context); new_ctx.update(ctx)
        child = Logger(
            stream=self.stream,
            level=self.level_name,
            use_color=self.use_color,
            show_time=self.show_time,
            time_fmt=self.time_fmt,
            buffer=self.buffer,
            _context=new_ctx,
            _json_stream=self._json_stream,
            _lock=self._lock,
        )
        return child

    def child(self, name: str) -> "Logger":
        return self.bind(module=name)

    @property
    def level_name(self) -> str:
        for k, v in LEVELS.items():
            if v == self.level_no:
                return k
        return "info"

    @property
    def tag(self) -> str:
        return str(self._context.get("module") or "APP").upper()

    # ----- formatting / sinks
    def _fmt_text(self, level: str, *parts: Any) -> str:
        lvl_tag = LEVEL_TAG.get(level, "[i]")
        body = " ".join(str(p) for p in parts)
        if self.use_color:
            col = {"debug": YELLOW, "info": BLUE, "success": GREEN}.get(level, RED)
            lvl_tag = f"{col}{lvl_tag}{RESET}"
        msg = f"{lvl_tag} [{self.tag}] {body}"
        if self.show_time:
            ts = datetime.datetime.now().strftime(self.time_fmt)
            prefix = f"{DIM}[{ts}]{RESET}" if self.use_color else f"[{ts}]"
            return f"{prefix} {msg}"
        return msg

    def _emit(self, level: str, parts: tuple, extra: Optional[Mapping[str, Any]]) -> None:
        text = self._fmt_text(level, *parts)
        msg = " ".join(str(p) for p in parts)
        with self._lock:
            self.stream.write(text + "\n")
            self.stream.flush()
            if self._json_stream:
                payload: Dict[str, Any] = {
                    "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds"),
                    "level": "info" if level == "success" else level,
                    "msg": msg,
                    "ctx": self._context or {},
                }
                if extra:
                    payload["extra"] = dict(extra)
                self._json_stream.write(json.dumps(payload, ensure_ascii=False) + "\n")
                self._json_stream.flush()
        if self.buffer is not None:
            self.buffer.append(self.tag, text)

    # ----- public API
    def debug(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        if self.level_no <= LEVELS["debug"]:
            self._emit("debug", parts, extra)

    def info(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        if self.level_no <= LEVELS["info"]:
            self._emit("info", parts, extra)

    def warn(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        if self.level_no <= LEVELS["warn"]:
            self._emit("warn", parts, extra)

    # alias for libraries that call .warning
    def warning(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self.warn(*parts, extra=extra)

    def error(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        if self.level_no <= LEVELS["error"]:
            self._emit("error", parts, extra)

    def success(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        if self.level_no <= LEVELS["info"]:
            self._emit("success", parts, extra)

    # callable adapter: logger("text", level="INFO", module="TMDB")
    def __call__(
        self,
        message: str,
        *,
        level: str = "INFO",
        module: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        target = self.bind(module=module) if module else self
        lvl = (level or "INFO").lower()
        if   lvl == "debug":   target.debug(message, extra=extra)
        elif lvl in ("warn", "warning"): target.warn(message, extra=extra)
        elif lvl == "error":   target.error(message, extra=extra)
        else:                  target.info(message, extra=extra)


# default instance, shared buffer for the web UI
LOG_BUFFER = LogBuffer()
log = Logger(buffer=LOG_BUFFER)

__all__ = ["Logger", "LogBuffer", "LOG_BUFFER", "log", "LEVELS", "strip_ansi"]

from datetime import datetime
from enum import StrEnum


class M(StrEnum):
    # ── Auth ──
    AAUT = "AAUT"  # token acquired / reused
    AERR = "AERR"  # auth failure

    # ── HTTP ──
    CRES = "CRES"  # response payload

    # ── Tasks ──
    TSUB = "TSUB"  # task submitted
    TPOL = "TPOL"  # poll attempt (status snapshot)
    TDNE = "TDNE"  # task done
    TFAL = "TFAL"  # task failed / timed out

    # ── Event stream ──
    EOPN = "EOPN"  # stream opened
    EMSG = "EMSG"  # stream message
    ECLS = "ECLS"  # stream closed

    # ── Chat / Quota ──
    UASK = "UASK"  # question sent
    UANS = "UANS"  # assistant reply
    QCNT = "QCNT"  # quota counter
    QUPG = "QUPG"  # upgrade prompt (quota exhausted)

    # ── System ──
    SINF = "SINF"  # system info
    SERR = "SERR"  # system error
    SCFG = "SCFG"  # config message


_enabled = True


def set_enabled(value: bool) -> None:
    global _enabled
    _enabled = value


def _ts() -> str:
    return datetime.now().strftime("%H:%M:%S")


def emit(code: M, message: str, *, truncate: int = 0) -> None:
    if not _enabled:
        return
    if truncate > 0 and len(message) > truncate:
        message = message[:truncate] + f"... [{len(message) - truncate} chars]"
    print(f"{{{code.value}}}{_ts()} {message}", flush=True)


def emit_block(code: M, label: str, content: str, *, max_lines: int = 0) -> None:
    if not _enabled:
        return
    lines = content.splitlines()
    if max_lines > 0 and len(lines) > max_lines:
        lines = lines[:max_lines] + [f"... [{len(lines) - max_lines} more lines]"]
    tag = f"{{{code.value}}}"
    print(f"{tag}{_ts()} ┌── {label}", flush=True)
    for line in lines:
        print(f"{tag}{_ts()}  │ {line}", flush=True)
    print(f"{tag}{_ts()} └──", flush=True)

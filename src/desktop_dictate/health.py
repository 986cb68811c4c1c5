import logging
import shutil
from dataclasses import dataclass

import sounddevice as sd

from desktop_dictate.adapters.sounddevice_audio import NEGOTIATION_ORDER
from desktop_dictate.adapters.text_insertion import default_strategy_names
from desktop_dictate.config import DictateConfig

logger = logging.getLogger(__name__)

TOOL_BINARIES = {
    "ydotool": ["ydotool"],
    "wtype": ["wtype"],
    "xclip-paste": ["xclip", "xdotool"],
}


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: DictateConfig) -> list[HealthCheckResult]:
    results = [
        _check_audio_device(config),
        _check_capture_format(config),
        _check_api_key(config),
        _check_insertion_tools(config),
    ]

    passed = sum(1 for r in results if r.passed)
    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    critical_checks = {"audio_device", "capture_format"}
    return any(not r.passed and r.name in critical_checks for r in results)


def _capture_device(config: DictateConfig) -> str | int | None:
    if not config.capture_device:
        return None
    try:
        return int(config.capture_device)
    except ValueError:
        return config.capture_device


def _check_audio_device(config: DictateConfig) -> HealthCheckResult:
    name = "audio_device"
    try:
        device = sd.query_devices(_capture_device(config), kind="input")
    except (sd.PortAudioError, ValueError) as exc:
        return HealthCheckResult(name=name, passed=False, detail=f"No input device available: {exc}")
    return HealthCheckResult(
        name=name,
        passed=True,
        detail=f"{device['name']} (default rate {device['default_samplerate']:.0f} Hz)",
    )


def _check_capture_format(config: DictateConfig) -> HealthCheckResult:
    name = "capture_format"
    failures = []
    for dtype in NEGOTIATION_ORDER:
        try:
            sd.check_input_settings(
                device=_capture_device(config),
                channels=config.channels,
                dtype=dtype,
                samplerate=config.sample_rate,
            )
            return HealthCheckResult(
                name=name,
                passed=True,
                detail=f"{config.sample_rate} Hz / {config.channels} ch as {dtype}",
            )
        except (sd.PortAudioError, ValueError) as exc:
            failures.append(f"{dtype}: {exc}")
    return HealthCheckResult(name=name, passed=False, detail="; ".join(failures))


def _check_api_key(config: DictateConfig) -> HealthCheckResult:
    name = "api_key"
    if config.resolve_api_key():
        return HealthCheckResult(name=name, passed=True, detail="Loaded")
    source = config.api_key_file or "not configured"
    return HealthCheckResult(name=name, passed=False, detail=f"Missing ({source})")


def _check_insertion_tools(config: DictateConfig) -> HealthCheckResult:
    name = "insertion_tools"
    names = config.insertion_strategies or default_strategy_names()
    missing = [
        binary
        for strategy in names
        for binary in TOOL_BINARIES.get(strategy, [])
        if shutil.which(binary) is None
    ]
    if missing:
        return HealthCheckResult(
            name=name,
            passed=False,
            detail=f"Missing binaries: {', '.join(missing)} (chain: {' -> '.join(names)})",
        )
    return HealthCheckResult(name=name, passed=True, detail=" -> ".join(names))

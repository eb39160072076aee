"""
Audio device catalog built from ffmpeg's device listing.

ffmpeg prints its avfoundation devices on stderr in two sections:

    [AVFoundation indev @ 0x7f8] AVFoundation video devices:
    [AVFoundation indev @ 0x7f8] [0] FaceTime HD Camera
    [AVFoundation indev @ 0x7f8] AVFoundation audio devices:
    [AVFoundation indev @ 0x7f8] [0] BlackHole 2ch
    [AVFoundation indev @ 0x7f8] [1] MacBook Pro Microphone

Only the entries of the audio section are turned into devices.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

AUDIO_SECTION_MARKER = "AVFoundation audio devices"
VIDEO_SECTION_MARKER = "AVFoundation video devices"

_DEVICE_LINE = re.compile(r"\[(\d+)\] (.+)$")


@dataclass(frozen=True)
class AudioDevice:
    index: int
    name: str
    id: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", f"{self.index}-{self.name}")

    @property
    def label(self) -> str:
        return f"[{self.index}] {self.name}"


def parse_device_listing(raw_text: str) -> List[AudioDevice]:
    devices: List[AudioDevice] = []
    in_audio_section = False

    for line in raw_text.splitlines():
        if AUDIO_SECTION_MARKER in line:
            in_audio_section = True
            continue
        if VIDEO_SECTION_MARKER in line:
            in_audio_section = False
            continue
        if not in_audio_section:
            continue

        match = _DEVICE_LINE.search(line)
        if match is None:
            continue
        name = match.group(2).strip()
        if not name:
            continue
        devices.append(AudioDevice(index=int(match.group(1)), name=name))

    return devices


def find_device(devices: Sequence[AudioDevice], device_id: str) -> Optional[AudioDevice]:
    found = None
    for device in devices:
        if device.id == device_id:
            found = device
    return found


def find_device_by_index(
    devices: Sequence[AudioDevice], index: int
) -> Optional[AudioDevice]:
    for device in devices:
        if device.index == index:
            return device
    return None


def _is_microphone_mix(name: str) -> bool:
    return "aggregate" in name or ("mic" in name and "blackhole" in name)


def _is_system_output(name: str) -> bool:
    return "blackhole 2ch" in name


@dataclass(frozen=True)
class SelectionRule:
    matches: Callable[[str], bool]
    found_message: str
    missing_message: str


# Keyed by "include microphone".
SELECTION_RULES: Dict[bool, SelectionRule] = {
    True: SelectionRule(
        matches=_is_microphone_mix,
        found_message="Microphone ON: using {name}.",
        missing_message="No Aggregate Device found. Create one in Audio MIDI Setup.",
    ),
    False: SelectionRule(
        matches=_is_system_output,
        found_message="Microphone OFF: using {name}.",
        missing_message="BlackHole 2ch not found. Check Audio MIDI Setup.",
    ),
}


def select_preferred(
    devices: Sequence[AudioDevice], enable_microphone: bool
) -> Optional[AudioDevice]:
    rule = SELECTION_RULES[enable_microphone]
    for device in devices:
        if rule.matches(device.name.lower()):
            return device
    return None


def selection_message(
    device: Optional[AudioDevice], enable_microphone: bool
) -> str:
    rule = SELECTION_RULES[enable_microphone]
    if device is None:
        return rule.missing_message
    return rule.found_message.format(name=device.name)

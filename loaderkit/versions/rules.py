"""Library and argument rule evaluation."""

import platform
import re
import struct
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .models import Library, Rule


def native_os_name(system: Optional[str] = None) -> str:
    """Map ``platform.system()`` to the OS names used by descriptors."""
    system = (system or platform.system()).lower()
    if system == "windows":
        return "windows"
    if system == "darwin":
        return "osx"
    if system == "linux":
        return "linux"
    return "unknown"


def native_arch(machine: Optional[str] = None) -> str:
    machine = (machine or platform.machine()).lower()
    if machine in ("amd64", "x86_64", "x64"):
        return "x86_64"
    if machine in ("i386", "i486", "i586", "i686", "x86"):
        return "x86"
    if machine in ("arm64", "aarch64"):
        return "arm64"
    if machine.startswith("arm"):
        return "arm32"
    return machine


@dataclass(frozen=True)
class PlatformInfo:
    os_name: str
    os_version: str
    arch: str
    bits: int

    @classmethod
    def current(cls) -> "PlatformInfo":
        return cls(
            os_name=native_os_name(),
            os_version=platform.release(),
            arch=native_arch(),
            bits=struct.calcsize("P") * 8,
        )


class RuleEvaluator:
    """Decides whether a library or conditional argument applies here.

    A rule *matches* when all of its OS and feature conditions hold for the
    current platform. An ``allow`` rule passes only when it matches, a
    ``disallow`` rule passes only when it does not; the item applies when
    every rule passes.
    """

    def __init__(self, platform_info: Optional[PlatformInfo] = None,
                 features: Optional[Dict[str, bool]] = None):
        self.platform = platform_info or PlatformInfo.current()
        self.features = dict(features or {})

    def rule_matches(self, rule: Rule) -> bool:
        if rule.os:
            if rule.os.name and rule.os.name != self.platform.os_name:
                return False
            if rule.os.version:
                try:
                    if not re.search(rule.os.version, self.platform.os_version):
                        return False
                except re.error:
                    return False
            if rule.os.arch and not self._arch_matches(rule.os.arch):
                return False
        if rule.features:
            for feature, wanted in rule.features.items():
                if self.features.get(feature, False) != wanted:
                    return False
        return True

    def _arch_matches(self, arch: str) -> bool:
        arch = arch.lower()
        if arch == "x86":
            # "x86" in descriptors means a 32-bit runtime
            return self.platform.bits == 32
        return native_arch(arch) == self.platform.arch

    def applies(self, rules: Optional[Iterable[Rule]]) -> bool:
        if not rules:
            return True
        for rule in rules:
            matches = self.rule_matches(rule)
            allowed = matches if rule.action != "disallow" else not matches
            if not allowed:
                return False
        return True

    def should_use_library(self, library: Library) -> bool:
        return self.applies(library.rules)

    def filter_libraries(self, libraries: Iterable[Library]) -> List[Library]:
        """Filter libraries based on rules (OS, arch, etc.)."""
        return [lib for lib in libraries if self.should_use_library(lib)]

    def native_classifier(self, library: Library) -> Optional[str]:
        """Classifier of the native archive for this platform, if any."""
        if not library.natives:
            return None
        classifier = library.natives.get(self.platform.os_name)
        if not classifier:
            return None
        return classifier.replace("${arch}", "64" if self.platform.bits == 64 else "32")

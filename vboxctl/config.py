"""Dataclass configuration for vboxctl and its TOML persistence."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path

from .util import expand

DEFAULT_VBOXMANAGE = '/usr/bin/VBoxManage'


@dataclass
class ToolsConfig:
    vboxmanage: str = DEFAULT_VBOXMANAGE
    ui: str = '/usr/bin/VirtualBoxVM'


@dataclass
class DefaultsConfig:
    memory_mb: int = 1024
    cpus: int = 1
    vram_mb: int = 48
    hdd_size_mb: int = 32000
    hdd_file: str = 'hdd.vdi'
    vm_dir: str = '~/VirtualBox VMs'
    ostype: str = 'Other_64'
    bridge: str = ''
    graphics: str = 'vmsvga'
    shared_folder_name: str = 'public'


@dataclass
class WaitConfig:
    timeout_s: float = 60.0
    poll_s: float = 2.0


@dataclass
class VBoxCtlConfig:
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    wait: WaitConfig = field(default_factory=WaitConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'VBoxCtlConfig':
        self.tools.vboxmanage = expand(self.tools.vboxmanage)
        self.tools.ui = expand(self.tools.ui) if self.tools.ui else ''
        self.defaults.vm_dir = expand(self.defaults.vm_dir)
        return self


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def dump_toml(cfg: VBoxCtlConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    # top-level keys must precede the first table header
    if d['verbosity'] != 1:
        lines.append(f"verbosity = {d['verbosity']}")
        lines.append('')
    for section, body in d.items():
        if not isinstance(body, dict):
            continue
        lines.append(f'[{section}]')
        for k, v in body.items():
            if isinstance(v, bool):
                lines.append(f"{k} = {'true' if v else 'false'}")
            elif isinstance(v, (int, float)):
                lines.append(f'{k} = {v}')
            else:
                lines.append(f'{k} = "{_toml_escape(str(v))}"')
        lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def load(path: Path) -> VBoxCtlConfig:
    raw = tomllib.loads(path.read_text(encoding='utf-8'))
    cfg = VBoxCtlConfig()
    for section in ('tools', 'defaults', 'wait'):
        if section in raw and isinstance(raw[section], dict):
            obj = getattr(cfg, section)
            for k, v in raw[section].items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    return cfg


def save(path: Path, cfg: VBoxCtlConfig) -> None:
    path.write_text(dump_toml(cfg), encoding='utf-8')

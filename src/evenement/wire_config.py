# src/evenement/wire_config.py
from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from evenement.core import log
from evenement.core.contracts import WireConfigError
from evenement.core.manager import EvenementManager

l = log.get("evenement.wire")


def _imp(module: str, cls: str):
    try:
        mod = importlib.import_module(module)
    except ImportError as e:
        raise WireConfigError(f"cannot import listener module {module!r}: {e}") from e
    try:
        return getattr(mod, cls)
    except AttributeError as e:
        raise WireConfigError(f"module {module!r} has no attribute {cls!r}") from e


def _manager_from(data: Dict[str, Any]) -> EvenementManager:
    mgr_cfg = data.get("manager")
    if not mgr_cfg:
        return EvenementManager.get_instance()
    if not isinstance(mgr_cfg, dict):
        raise WireConfigError("'manager' must be a mapping")
    return EvenementManager(name=str(mgr_cfg.get("name", "manager")))


def build_from_dict(data: Dict[str, Any], manager: Optional[EvenementManager] = None) -> Tuple[EvenementManager, List[Any]]:
    if not isinstance(data, dict):
        raise WireConfigError("wiring document must be a mapping")

    mgr = manager or _manager_from(data)

    entries = data.get("listeners") or []
    if not isinstance(entries, list):
        raise WireConfigError("'listeners' must be a list")

    listeners = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict) or "module" not in entry or "class" not in entry:
            raise WireConfigError(f"listeners[{i}] needs 'module' and 'class'")
        ListenerCls = _imp(entry["module"], entry["class"])
        args = entry.get("args") or {}
        if not isinstance(args, dict):
            raise WireConfigError(f"listeners[{i}].args must be a mapping")
        try:
            instance = ListenerCls(**args)
        except Exception as e:
            raise WireConfigError(f"listeners[{i}]: cannot construct {entry['class']}: {e}") from e
        listeners.append(instance)

    # register only once every listener was built, so a bad document files nothing
    for instance in listeners:
        mgr.register_listener(instance)

    l.info("wired %d listener(s) into %s", len(listeners), mgr.name)
    return mgr, listeners


def build_from_yaml(yaml_path: str, manager: Optional[EvenementManager] = None) -> Tuple[EvenementManager, List[Any]]:
    """Read a listener wiring YAML and register every listener it names, in file order."""
    try:
        data = yaml.safe_load(Path(yaml_path).read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise WireConfigError(f"{yaml_path}: invalid YAML ({e})") from e
    return build_from_dict(data or {}, manager=manager)

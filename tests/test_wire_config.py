import textwrap
from pathlib import Path

import pytest

from evenement.core.contracts import WireConfigError
from evenement.core.manager import EvenementManager
from evenement.wire_config import build_from_dict, build_from_yaml

LISTENERS_SRC = textwrap.dedent('''
    from dataclasses import dataclass

    from evenement.core.contracts import Evenement
    from evenement.core.handler import evenement_handler

    JOURNAL = []


    @dataclass
    class OrderPlaced(Evenement):
        order_id: str


    class Audit:
        def __init__(self, prefix="audit"):
            self.prefix = prefix

        @evenement_handler
        def on_order(self, ev: OrderPlaced):
            JOURNAL.append(f"{self.prefix}:{ev.order_id}")


    class Mailer:
        @evenement_handler
        def on_order(self, ev: OrderPlaced):
            JOURNAL.append(f"mail:{ev.order_id}")
''')


@pytest.fixture
def listeners_mod(tmp_path: Path, monkeypatch):
    (tmp_path / "wired_listeners.py").write_text(LISTENERS_SRC, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    import importlib
    mod = importlib.import_module("wired_listeners")
    mod.JOURNAL.clear()
    return mod


def _write(tmp_path: Path, body: str) -> str:
    p = tmp_path / "wiring.yaml"
    p.write_text(textwrap.dedent(body), encoding="utf-8")
    return p.as_posix()


def test_build_from_yaml_registers_in_file_order(tmp_path, listeners_mod):
    path = _write(tmp_path, """
        manager:
          name: orders
        listeners:
          - module: wired_listeners
            class: Mailer
          - module: wired_listeners
            class: Audit
            args: {prefix: "A"}
    """)
    mgr, listeners = build_from_yaml(path)

    assert mgr.name == "orders"
    assert mgr is not EvenementManager.get_instance()
    assert [type(x).__name__ for x in listeners] == ["Mailer", "Audit"]

    mgr.call(listeners_mod.OrderPlaced("o-1"))
    assert listeners_mod.JOURNAL == ["mail:o-1", "A:o-1"]


def test_explicit_manager_wins(tmp_path, listeners_mod, manager):
    path = _write(tmp_path, """
        manager: {name: ignored}
        listeners:
          - {module: wired_listeners, class: Audit}
    """)
    mgr, _ = build_from_yaml(path, manager=manager)
    assert mgr is manager
    assert len(manager.handlers_for(listeners_mod.OrderPlaced)) == 1


def test_empty_document_uses_global_manager(tmp_path):
    path = _write(tmp_path, "")
    mgr, listeners = build_from_yaml(path)
    assert mgr is EvenementManager.get_instance()
    assert listeners == []


@pytest.mark.parametrize("doc", [
    ["not", "a", "mapping"],
    {"listeners": {"module": "x"}},
    {"listeners": [{"module": "wired_listeners"}]},
    {"listeners": [{"module": "no_such_module_xyz", "class": "A"}]},
    {"listeners": [{"module": "wired_listeners", "class": "Missing"}]},
    {"listeners": [{"module": "wired_listeners", "class": "Audit", "args": [1]}]},
    {"listeners": [{"module": "wired_listeners", "class": "Audit", "args": {"nope": 1}}]},
    {"listeners": [
        {"module": "wired_listeners", "class": "Mailer"},
        {"module": "wired_listeners", "class": "Audit", "args": {"nope": 1}},
    ]},
    {"manager": "orders"},
])
def test_bad_documents_raise(doc, listeners_mod, manager):
    with pytest.raises(WireConfigError):
        build_from_dict(doc, manager=None if "manager" in doc else manager)
    assert manager.event_types() == ()


def test_invalid_yaml_raises(tmp_path):
    path = _write(tmp_path, "listeners: [unclosed")
    with pytest.raises(WireConfigError):
        build_from_yaml(path)

import os
from dataclasses import dataclass

from evenement.core import log
from evenement.core.contracts import Evenement
from evenement.core.handler import evenement_handler
from evenement.core.manager import get_instance
from evenement.core.metrics import force_emit, start_exporter, stop_exporter


@dataclass
class PlayerJoined(Evenement):
    player: str


@dataclass
class PlayerLeft(Evenement):
    player: str
    reason: str = "quit"


class Lobby:
    def __init__(self):
        self.online = set()

    @evenement_handler
    def on_join(self, ev: PlayerJoined):
        self.online.add(ev.player)

    @evenement_handler
    def on_leave(self, ev: PlayerLeft):
        self.online.discard(ev.player)


class Chat:
    @evenement_handler
    def announce(self, ev: PlayerJoined):
        print(f"* {ev.player} joined")

    @evenement_handler
    def farewell(self, ev: PlayerLeft):
        if ev.reason == "kick":
            raise RuntimeError("kick messages are not wired yet")
        print(f"* {ev.player} left ({ev.reason})")


def main():
    log.setup()
    json_mode = (os.getenv("LOG_JSON", "0") == "1")
    start_exporter(interval_sec=float(os.getenv("METRICS_INTERVAL", "5")), json_mode=json_mode)
    mgr = get_instance()
    lobby = Lobby()
    mgr.register_listener(lobby)
    mgr.register_listener(Chat())

    for name in ("ada", "linus", "grace"):
        mgr.call(PlayerJoined(name))
    mgr.call(PlayerLeft("linus"))
    mgr.call(PlayerLeft("grace", reason="kick"))  # Chat.farewell raises, Lobby still updates

    print("online:", sorted(lobby.online))
    stop_exporter()
    force_emit(json_mode=json_mode)


if __name__ == "__main__":
    main()

"""Drive a model and an implementation of the same interface in lock step.

A ForwardingHandler proxy replays every call on both an oracle and the real
ATM, while hypothesis chooses which calls to make.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

import hypothesis.strategies as st
from hypothesis import assume
from hypothesis.stateful import (
    Bundle,
    RuleBasedStateMachine,
    initialize,
    invariant,
    precondition,
    rule,
)

from dynproxy.factory import create_proxy
from dynproxy.handler import Call, ForwardingHandler
from dynproxy.primitives import UInt8


class Card(NamedTuple):
    name: str
    pin: str


MenuItem = Enum("MenuItem", "withdraw balance quit")
State = Enum("State", "idle enter_pin menu return_card")


class AtmIf(ABC):
    @abstractmethod
    def insert_card(self, card: Card) -> None:
        pass

    @abstractmethod
    def enter_pin(self, pin: str) -> None:
        pass

    @abstractmethod
    def return_card(self) -> None:
        pass

    @abstractmethod
    def choose_menu_item(self, item: MenuItem) -> None:
        pass

    @property
    @abstractmethod
    def pin_tries(self) -> UInt8:
        pass


@dataclass
class AtmOracle(AtmIf):
    state: State = State.idle
    card: Card | None = None
    tries: int = 0

    def insert_card(self, card: Card) -> None:
        self.state, self.card, self.tries = State.enter_pin, card, 0

    def enter_pin(self, pin: str) -> None:
        assert self.card
        if pin == self.card.pin:
            self.state = State.menu
        elif self.tries >= 2:
            self.state = State.return_card
        else:
            self.tries += 1

    def return_card(self) -> None:
        self.state, self.card, self.tries = State.idle, None, 0

    def choose_menu_item(self, item: MenuItem) -> None:
        if item == MenuItem.quit:
            self.state = State.return_card

    @property
    def pin_tries(self) -> UInt8:
        return UInt8(self.tries)


@dataclass
class RealAtm(AtmIf):
    card: Card | None = None
    tries: int = 0
    pin_ok: bool = False

    def insert_card(self, card: Card) -> None:
        assert not self.card
        self.card = card

    def enter_pin(self, pin: str) -> None:
        assert self.card and not self.pin_ok
        if pin == self.card.pin:
            self.pin_ok = True
        elif self.tries < 2:
            self.tries += 1

    def return_card(self) -> None:
        assert self.card
        self.card, self.tries, self.pin_ok = None, 0, False

    def choose_menu_item(self, item: MenuItem) -> None:
        assert self.pin_ok

    @property
    def pin_tries(self) -> UInt8:
        return UInt8(self.tries)


class AtmMachine(RuleBasedStateMachine):
    cards = Bundle("cards")
    calls: list[Call] = []

    @staticmethod
    def oracle_state(state: State):
        return lambda self: self.oracle.state == state

    @initialize()
    def init(self):
        self.oracle = AtmOracle()
        self.real = RealAtm()
        handler = ForwardingHandler([self.oracle, self.real], AtmMachine.calls)
        self.proxy = create_proxy(handler, AtmIf)

    @rule(target=cards, card=st.builds(Card))
    def add_card(self, card: Card):
        return card

    @precondition(oracle_state(State.idle))
    @rule(card=cards)
    def insert_card(self, card: Card):
        self.proxy.insert_card(card)

    @precondition(oracle_state(State.enter_pin))
    @rule(pin=st.text(), correct=st.booleans())
    def enter_pin(self, pin: str, correct: bool):
        assert self.oracle.card
        if correct:
            pin = self.oracle.card.pin
        else:
            assume(pin != self.oracle.card.pin)
        self.proxy.enter_pin(pin)

    @precondition(oracle_state(State.menu))
    @rule(item=st.sampled_from(MenuItem))
    def choose_menu_item(self, item: MenuItem):
        self.proxy.choose_menu_item(item)

    @precondition(oracle_state(State.return_card))
    @rule()
    def return_card(self):
        self.proxy.return_card()

    @invariant()
    def pin_tries_agree(self):
        if hasattr(self, "proxy"):
            assert self.proxy.pin_tries == self.real.pin_tries


TestAtm = AtmMachine.TestCase


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    try:
        TestAtm().runTest()
    finally:
        print("\n".join(map(repr, AtmMachine.calls[-20:])))

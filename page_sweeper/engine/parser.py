"""Parsing of the tab separated transaction table."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

from ..errors import RecordParseError

# "<account>\tTransaction <id>\t<amount><currency symbol>"
TRANSACTION_LINE = re.compile(r"^([a-zA-Z]+)\tTransaction (\d+)\t(\d+)(.)$")


@dataclass(frozen=True, slots=True)
class Record:
    """One transaction row extracted from a page."""

    account: str
    transaction: str
    amount: str
    currency: str

    def as_dict(self) -> dict[str, str]:
        return {
            "Account": self.account,
            "Transaction": self.transaction,
            "Amount": self.amount,
            "Currency": self.currency,
        }


class RecordParser(Protocol):
    """Turn raw table text into records; an empty list means no more pages."""

    def parse(self, raw_text: str) -> list[Record]:
        ...


class TransactionParser:
    """Parse the transaction table layout, skipping the header row."""

    def __init__(self, pattern: re.Pattern[str] = TRANSACTION_LINE) -> None:
        self.pattern = pattern

    def parse(self, raw_text: str) -> list[Record]:
        _header, *lines = raw_text.split("\n")
        records: list[Record] = []
        for line_number, line in enumerate(lines, start=2):
            line = line.rstrip("\r")
            if not line:
                continue
            match = self.pattern.match(line)
            if match is None:
                raise RecordParseError(line, line_number)
            account, transaction, amount, currency = match.groups()
            records.append(Record(account, transaction, amount, currency))
        return records


__all__ = ["Record", "RecordParser", "TransactionParser", "TRANSACTION_LINE"]

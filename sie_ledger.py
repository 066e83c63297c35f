"""
SIE Ledger - Read Swedish SIE accounting exports into accounts and verifications.

SIE files are written in the IBM PC8 code page but are commonly read back as
Windows-1252, which turns the Swedish letters into typographic glyphs (for
example "„" instead of "ä"). This library decodes the raw bytes with a fixed
Windows-1252 table, repairs those glyphs, and rebuilds:

- the chart of accounts (#KONTO) with opening balances (#IB, current year)
  and closing balances derived from all postings,
- the verifications (#VER) with their transactions (#TRANS).

Example usage:
    from sie_ledger import parse_sie_file

    ledger = parse_sie_file('bokforing.se')

    for verification in ledger.verifications:
        print(verification.voucher_index, verification.text)
    for account in ledger.accounts:
        print(account.number, account.name, account.closing_balance)
"""

__version__ = "0.1.0"

import codecs
import logging
import re
from dataclasses import dataclass, field
from os import PathLike
from typing import Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

SIE_ENCODING = "cp1252"

# PC8 letters as they come out of a Windows-1252 decode, and their repair
GLYPH_FIXES = (
    ("\u201e", "ä"),  # PC8 0x84
    ("\u201d", "ö"),  # PC8 0x94
    ("\u2122", "Ö"),  # PC8 0x99
    ("\u2020", "å"),  # PC8 0x86
    ("\u008f", "Å"),  # PC8 0x8F
    ("\ufffd", "?"),
)

_GLYPH_TABLE = str.maketrans(dict(GLYPH_FIXES))

VER = "#VER"
IB = "#IB"
KONTO = "#KONTO"
TRANS = "#TRANS"

UNKNOWN_IB_ACCOUNT = "unknown_ib_account"
UNKNOWN_TRANS_ACCOUNT = "unknown_trans_account"

_UNSIGNED_RE = re.compile(r"^\+?[0-9]+$")
_SIGNED_RE = re.compile(r"^[+-]?[0-9]+$")
_DECIMAL_RE = re.compile(r"^[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?$")


# Data Models
@dataclass
class SieAccount:
    """Represents an account declared by a #KONTO record."""
    number: int
    name: str
    opening_balance: float = 0.0
    closing_balance: float = 0.0


@dataclass
class SieTransaction:
    """A single posting inside a verification."""
    account_number: int
    amount: float


@dataclass
class SieVerification:
    """Represents a verification (voucher) and its postings in file order."""
    series: str
    number: int
    date: str
    text: str
    transactions: List[SieTransaction] = field(default_factory=list)

    @property
    def voucher_index(self) -> str:
        """Return the series and number joined, e.g. 'A1'."""
        return f"{self.series}{self.number}"


@dataclass
class SieAnomaly:
    """A non-fatal problem found while reading a file."""
    kind: str
    account_number: int
    message: str
    line_number: Optional[int] = None


@dataclass
class SieLedger:
    """Represents the accounts and verifications read from one SIE file."""
    accounts: List[SieAccount] = field(default_factory=list)
    verifications: List[SieVerification] = field(default_factory=list)
    anomalies: List[SieAnomaly] = field(default_factory=list)

    def find_account(self, number: int) -> Optional[SieAccount]:
        """Return the first account declared with this number, if any."""
        return index_accounts(self.accounts).get(number)


def index_accounts(accounts: Iterable[SieAccount]) -> Dict[int, SieAccount]:
    """Map account numbers to accounts, keeping the first declaration of a number."""
    index: Dict[int, SieAccount] = {}
    for account in accounts:
        index.setdefault(account.number, account)
    return index


# Decoder
def _c1_passthrough(error: UnicodeError):
    """Decode bytes that Windows-1252 leaves undefined as the C1 control with the same value."""
    if not isinstance(error, UnicodeDecodeError):
        raise error
    undefined = error.object[error.start:error.end]
    return "".join(chr(byte) for byte in undefined), error.end


codecs.register_error("sie-c1", _c1_passthrough)


def decode_sie_bytes(data: bytes) -> str:
    """
    Decode raw SIE bytes with the fixed Windows-1252 code page.

    Every byte value maps to a character, so this never raises. The PC8
    glyphs are not repaired here; see clean_string().
    """
    return data.decode(SIE_ENCODING, errors="sie-c1")


def clean_string(value: str) -> str:
    """
    Clean one extracted field value.

    Strips one layer of surrounding quotes and then whitespace, and repairs
    the PC8 letters mis-decoded as Windows-1252. Replacement glyphs become '?'.
    """
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value.strip().translate(_GLYPH_TABLE)


# Line Tokenizer
def tokenize_line(line: str) -> List[str]:
    """
    Split one record line into fields.

    Fields are separated by single spaces. Double quotes toggle a quoted span
    in which spaces are kept; the quote characters themselves are dropped.
    Consecutive spaces give empty fields and the last field is always
    returned, even when empty. An unterminated quote runs to the end of line.

    Args:
        line: One line of decoded SIE text

    Returns:
        List of field values, keyword first
    """
    fields = []
    current = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == " " and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


# Numeric fields; malformed input falls back to zero
def _parse_unsigned(text: str) -> int:
    text = text.strip()
    return int(text) if _UNSIGNED_RE.match(text) else 0


def _parse_signed(text: str) -> int:
    text = text.strip()
    return int(text) if _SIGNED_RE.match(text) else 0


def _parse_amount(text: str) -> float:
    text = text.strip().replace(",", ".")
    return float(text) if _DECIMAL_RE.match(text) else 0.0


def _field(fields: List[str], position: int) -> str:
    return fields[position] if position < len(fields) else ""


# Record Parser
@dataclass
class SieParserState:
    """
    Working state of the record parser.

    `current` is the open verification, or None before the first #VER.
    """
    accounts: List[SieAccount] = field(default_factory=list)
    verifications: List[SieVerification] = field(default_factory=list)
    anomalies: List[SieAnomaly] = field(default_factory=list)
    current: Optional[SieVerification] = None
    account_index: Dict[int, SieAccount] = field(default_factory=dict, repr=False)


def _close_verification(state: SieParserState) -> None:
    if state.current is not None:
        state.verifications.append(state.current)
        state.current = None


def _handle_ver(state: SieParserState, fields: List[str], line_number: int) -> None:
    _close_verification(state)
    state.current = SieVerification(
        series=clean_string(_field(fields, 1)),
        number=_parse_unsigned(_field(fields, 2)),
        date=clean_string(_field(fields, 3)),
        text=clean_string(_field(fields, 4)),
    )
    logger.debug("Line %d: opened verification %s", line_number, state.current.voucher_index)


def _handle_ib(state: SieParserState, fields: List[str], line_number: int) -> None:
    # Only the current fiscal year (offset 0) is tracked
    if _parse_signed(_field(fields, 1)) != 0:
        return
    account_number = _parse_unsigned(_field(fields, 2))
    amount = _parse_amount(_field(fields, 3))

    account = state.account_index.get(account_number)
    if account is None:
        anomaly = SieAnomaly(
            kind=UNKNOWN_IB_ACCOUNT,
            account_number=account_number,
            message=f"Cannot find account {account_number} for opening balance",
            line_number=line_number,
        )
        logger.warning("Line %d: %s", line_number, anomaly.message)
        state.anomalies.append(anomaly)
        return
    account.opening_balance = amount


def _handle_konto(state: SieParserState, fields: List[str], line_number: int) -> None:
    account = SieAccount(
        number=_parse_unsigned(_field(fields, 1)),
        name=clean_string(_field(fields, 2)),
    )
    state.accounts.append(account)
    state.account_index.setdefault(account.number, account)


def _handle_trans(state: SieParserState, fields: List[str], line_number: int) -> None:
    if state.current is None:
        return
    # Format: #TRANS account {object list} amount; the amount is the last field
    state.current.transactions.append(SieTransaction(
        account_number=_parse_unsigned(_field(fields, 1)),
        amount=_parse_amount(fields[-1]),
    ))


_RECORD_HANDLERS = (
    (VER, _handle_ver),
    (IB, _handle_ib),
    (KONTO, _handle_konto),
    (TRANS, _handle_trans),
)


def parse_record(state: SieParserState, line: str, line_number: int = 0) -> SieParserState:
    """
    Apply one line to the parser state and return the state.

    A #VER record closes the open verification before opening a new one.
    Unrecognised lines leave the state untouched.

    Args:
        state: Parser state to advance
        line: One line of decoded SIE text
        line_number: 1-based line number, used in anomaly reports

    Returns:
        The advanced state
    """
    line = line.strip()
    for keyword, handler in _RECORD_HANDLERS:
        if line.startswith(keyword):
            handler(state, tokenize_line(line), line_number)
            break
    return state


def finish_parse(state: SieParserState) -> SieLedger:
    """Close the last open verification and return the parsed ledger."""
    _close_verification(state)
    return SieLedger(
        accounts=state.accounts,
        verifications=state.verifications,
        anomalies=state.anomalies,
    )


def parse_lines(lines: Iterable[str]) -> SieLedger:
    """
    Parse decoded SIE lines into accounts and verifications.

    Closing balances are not computed here; see reconcile_balances().
    """
    state = SieParserState()
    for line_number, line in enumerate(lines, 1):
        parse_record(state, line, line_number)
    return finish_parse(state)


# Balance Reconciler
def reconcile_balances(accounts: List[SieAccount],
                       verifications: List[SieVerification]) -> List[SieAnomaly]:
    """
    Compute closing balances from opening balances and all postings.

    Must run once, after the whole file is parsed: transactions may refer to
    accounts declared later in the file.

    Args:
        accounts: Accounts with opening balances set
        verifications: Verifications in file order

    Returns:
        Anomalies for postings to unknown accounts; those postings are skipped
    """
    anomalies = []
    for account in accounts:
        account.closing_balance = account.opening_balance

    index = index_accounts(accounts)
    for verification in verifications:
        for transaction in verification.transactions:
            account = index.get(transaction.account_number)
            if account is None:
                anomaly = SieAnomaly(
                    kind=UNKNOWN_TRANS_ACCOUNT,
                    account_number=transaction.account_number,
                    message=(f"Could not find account {transaction.account_number} for "
                             f"transaction of {transaction.amount:.2f} in "
                             f"verification {verification.voucher_index}"),
                )
                logger.warning(anomaly.message)
                anomalies.append(anomaly)
                continue
            account.closing_balance += transaction.amount
    return anomalies


# Main Parser Functions
def parse_sie(data: bytes) -> SieLedger:
    """
    Parse the raw bytes of a SIE file and compute closing balances.

    Args:
        data: Whole file content as bytes

    Returns:
        SieLedger with accounts, verifications and any anomalies found
    """
    content = decode_sie_bytes(data)
    ledger = parse_lines(content.split("\n"))
    ledger.anomalies.extend(reconcile_balances(ledger.accounts, ledger.verifications))

    logger.info(
        "Parsed %d accounts and %d verifications (%d anomalies)",
        len(ledger.accounts), len(ledger.verifications), len(ledger.anomalies),
    )
    return ledger


def parse_sie_file(file_path: Union[str, PathLike]) -> SieLedger:
    """
    Parse a SIE file from a file path.

    Raises:
        OSError: If the file cannot be read (FileNotFoundError,
            PermissionError, ...). Nothing is parsed in that case.
    """
    with open(file_path, "rb") as f:
        data = f.read()
    return parse_sie(data)


# Public API
__all__ = [
    # Main parsing functions
    "parse_sie",
    "parse_sie_file",
    "parse_lines",
    "parse_record",
    "finish_parse",
    "reconcile_balances",
    # Decoding and tokenizing
    "decode_sie_bytes",
    "clean_string",
    "tokenize_line",
    # Data models
    "SieLedger",
    "SieAccount",
    "SieVerification",
    "SieTransaction",
    "SieAnomaly",
    "SieParserState",
    # Utility functions
    "index_accounts",
]

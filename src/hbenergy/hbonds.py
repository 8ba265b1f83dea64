"""
Provides the hydrogen bond records consumed by the energy pipeline.
Records are either read from the fixed-column listing written by HBPlus
(``.hb2`` files) or synthesised from two residue/atom specifiers.
"""

import io
import math
import os
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from hbenergy.constants import (
  BLANK_PLACEHOLDER,
  HBPLUS_HEADER_LINES,
  MAX_HBONDS,
  SIDECHAIN_BOND_TYPE,
  TERMINAL_OXYGEN,
)
from hbenergy.errors import CapacityExceededError, InputError
from hbenergy.log import logger

# (name, start, end) of every field of an HBPlus record, columns not listed are skipped
HBPLUS_COLUMNS = (
  ("donor_spec", 0, 6),
  ("donor_res_name", 6, 9),
  ("donor_atom", 10, 13),
  ("acceptor_spec", 14, 20),
  ("acceptor_res_name", 20, 23),
  ("acceptor_atom", 24, 27),
  ("dist_da", 27, 32),
  ("bond_type", 33, 35),
  ("angle_dha", 45, 51),
  ("dist_ha", 52, 57),
  ("angle_haaa", 57, 63),
  ("angle_daaa", 63, 69),
)
HBPLUS_LINE_WIDTH = 69
_COMPACT_SPEC = re.compile(r"^([A-Za-z-]?)(-?\d+)([A-Za-z-]?)$")


### CLASSES ###
@dataclass(frozen=True)
class ResidueKey:
  """Identifies one residue of a structure.

  Attributes:
    chain: Chain ID, a single space when the chain is unlabelled
    res_seq: Residue sequence number
    insertion: Insertion code, a single space when there is none
  """

  chain: str
  res_seq: int
  insertion: str = " "

  def __str__(self):
    chain = BLANK_PLACEHOLDER if self.chain == " " else self.chain
    insertion = BLANK_PLACEHOLDER if self.insertion == " " else self.insertion
    return f"{chain}{self.res_seq:04d}{insertion}"


@dataclass(frozen=True)
class HBond:
  """A single hydrogen bond between a donor and an acceptor residue.
  All angles are stored in radians.
  """

  index: int
  donor: ResidueKey
  donor_spec: str
  donor_res_name: str
  donor_atom: str
  acceptor: ResidueKey
  acceptor_spec: str
  acceptor_res_name: str
  acceptor_atom: str
  bond_type: str
  donor_hydrogen: Optional[str] = None
  dist_da: float = math.nan
  angle_dha: float = math.nan
  dist_ha: float = math.nan
  angle_haaa: float = math.nan
  angle_daaa: float = math.nan

  def __str__(self):
    return f"{self.donor_spec}.{self.donor_atom} -> {self.acceptor_spec}.{self.acceptor_atom} ({self.bond_type})"


### FUNCTIONS ###
def parse_res_spec(spec: str) -> ResidueKey:
  """Parses a residue specifier of the form ``[chain]NNNN[insertion]``.

  Both the six column form used by HBPlus (``A0012-``, ``A  12 ``) and
  the compact form (``A12``, ``12``, ``A12B``) are accepted. A ``-``
  in place of the chain or insertion code means blank.

  Parameters:
    spec: Residue specifier

  Returns:
    The matching residue key

  Raises:
    ValueError: If the specifier cannot be parsed

  """
  if len(spec) == 6 and re.fullmatch(r"[ \d-]{4}", spec[1:5]) and any(ch.isdigit() for ch in spec[1:5]):
    chain, number, insertion = spec[0], spec[1:5], spec[5]
  else:
    m = _COMPACT_SPEC.match(spec.strip())
    if m is None:
      raise ValueError(f'Invalid residue specifier "{spec}". Expected the form [chain]NNNN[insertion].')
    chain, number, insertion = m.group(1) or " ", m.group(2), m.group(3) or " "

  try:
    res_seq = int(number.replace(" ", ""))
  except ValueError:
    raise ValueError(f'Invalid residue number in specifier "{spec}".')

  if chain == BLANK_PLACEHOLDER:
    chain = " "
  if insertion == BLANK_PLACEHOLDER:
    insertion = " "
  return ResidueKey(chain, res_seq, insertion)


def deg_to_rad(deg: float) -> float:
  """Convert degrees to radians.

  Parameters:
    deg: Angle in degrees

  Returns:
    Angle in radians

  """
  return deg * math.pi / 180.0


def _parse_float(text: str, field: str, lineno: int) -> float:
  if not text.strip():
    return math.nan
  try:
    return float(text)
  except ValueError:
    raise InputError(f'Line {lineno}: invalid {field} value "{text.strip()}"')


def parse_hbond_line(line: str, index: int = 1, lineno: int = 0) -> Optional[HBond]:
  """Parses one record of an HBPlus listing.
  Fields are read by column position rather than by whitespace.

  Parameters:
    line: A single line of the listing
    index: 1-based ordinal given to the returned record
    lineno: Line number in the source file, only used in error messages

  Returns:
    The parsed hydrogen bond, or ``None`` for a line whose donor field is blank

  Raises:
    InputError: If a residue specifier or a numeric field is malformed

  """
  line = line.rstrip("\r\n").ljust(HBPLUS_LINE_WIDTH)
  fields = {name: line[start:end] for name, start, end in HBPLUS_COLUMNS}
  if not fields["donor_spec"].strip():
    return None

  try:
    donor = parse_res_spec(fields["donor_spec"])
    acceptor = parse_res_spec(fields["acceptor_spec"])
  except ValueError as e:
    raise InputError(f"Line {lineno}: {e}")

  return HBond(
    index=index,
    donor=donor,
    donor_spec=fields["donor_spec"],
    donor_res_name=fields["donor_res_name"].strip(),
    donor_atom=fields["donor_atom"].strip(),
    acceptor=acceptor,
    acceptor_spec=fields["acceptor_spec"],
    acceptor_res_name=fields["acceptor_res_name"].strip(),
    acceptor_atom=fields["acceptor_atom"].strip(),
    bond_type=fields["bond_type"].strip(),
    dist_da=_parse_float(fields["dist_da"], "donor-acceptor distance", lineno),
    angle_dha=deg_to_rad(_parse_float(fields["angle_dha"], "D-H-A angle", lineno)),
    dist_ha=_parse_float(fields["dist_ha"], "H-A distance", lineno),
    angle_haaa=deg_to_rad(_parse_float(fields["angle_haaa"], "H-A-AA angle", lineno)),
    angle_daaa=deg_to_rad(_parse_float(fields["angle_daaa"], "D-A-AA angle", lineno)),
  )


def read_hbonds(listing: Union[str, os.PathLike, io.IOBase], max_records: int = MAX_HBONDS) -> List[HBond]:
  """Reads every hydrogen bond of an HBPlus listing.
  The header block is skipped and blank records are ignored.

  Parameters:
    listing: Path to, or open text handle of, an HBPlus ``.hb2`` file
    max_records: Record count at which reading is aborted, so at most ``max_records - 1`` bonds are accepted

  Returns:
    Hydrogen bonds in file order, numbered from 1

  Raises:
    InputError: If the listing cannot be read or holds a malformed record
    CapacityExceededError: If the listing holds ``max_records`` or more bonds

  """
  try:
    if isinstance(listing, io.IOBase):
      return _read_hbond_lines(listing, max_records)
    with open(listing, "r", encoding="utf-8") as fh:
      return _read_hbond_lines(fh, max_records)
  except OSError as e:
    raise InputError(f"Unable to read HBPlus listing {listing}: {e}")
  except UnicodeDecodeError as e:
    raise InputError(f"HBPlus listing {listing} is not a text file: {e}")


def _read_hbond_lines(fh, max_records: int) -> List[HBond]:
  hbonds = []
  for lineno, line in enumerate(fh, start=1):
    if lineno <= HBPLUS_HEADER_LINES:
      continue
    hbond = parse_hbond_line(line, index=len(hbonds) + 1, lineno=lineno)
    if hbond is None:
      continue
    hbonds.append(hbond)
    if len(hbonds) >= max_records:
      raise CapacityExceededError(f"Too many hydrogen bonds in listing, fewer than {max_records} are supported")

  logger.info(f"Read {len(hbonds)} hydrogen bonds from listing.")
  return hbonds


def create_hbond(resspec1: str, resspec2: str) -> HBond:
  """Builds a sidechain-sidechain hydrogen bond from two specifiers of
  the form ``[c]nnnn[i].ATOM``. The first specifier is the donor.
  Specifiers are upper-cased and split on their first ``.``.

  Parameters:
    resspec1: Donor residue and atom, e.g. ``A0012 .OG``
    resspec2: Acceptor residue and atom, e.g. ``A0015 .OD1``

  Returns:
    The synthesised hydrogen bond, numbered 1

  Raises:
    ValueError: If a specifier has no atom part or an invalid residue part

  """
  parts = []
  for resspec in (resspec1, resspec2):
    resspec = resspec.upper()
    if "." not in resspec:
      raise ValueError(f'Invalid specifier "{resspec}". Expected the form [c]nnn[i].atom')
    res, atom = resspec.split(".", 1)
    parts.append((res, parse_res_spec(res), atom.strip()))

  (donor_spec, donor, donor_atom), (acceptor_spec, acceptor, acceptor_atom) = parts
  return HBond(
    index=1,
    donor=donor,
    donor_spec=donor_spec,
    donor_res_name="",
    donor_atom=donor_atom,
    acceptor=acceptor,
    acceptor_spec=acceptor_spec,
    acceptor_res_name="",
    acceptor_atom=acceptor_atom,
    bond_type=SIDECHAIN_BOND_TYPE,
  )


def is_sidechain_bond(hbond: HBond) -> bool:
  """Returns True for the bonds evaluated by default: sidechain-sidechain
  bonds where neither atom is the terminal oxygen.
  """
  return (
    hbond.bond_type == SIDECHAIN_BOND_TYPE
    and not hbond.donor_atom.startswith(TERMINAL_OXYGEN)
    and not hbond.acceptor_atom.startswith(TERMINAL_OXYGEN)
  )

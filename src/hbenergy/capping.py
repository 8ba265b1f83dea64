"""
Terminal capping of residue fragments.

A fragment cut out of a protein has a free amine on its first residue and a
free carboxyl on its last. Before the fragment is handed to ecalc the N
terminus receives explicit hydrogens (replacing any amide hydrogen) and the C
terminus receives its second oxygen. Hydrogen and oxygen names follow either
the CHARMM convention used by ecalc (``HT1``-``HT3``, ``OT1``/``OT2``) or
the standard PDB one (``H1``-``H3``, ``O``/``OXT``).
"""

import math
from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np

from hbenergy.constants import (
  AMIDE_HYDROGENS,
  CAP_STYLES,
  CO_BOND_LENGTH,
  CTER_OXYGENS,
  NH_BOND_LENGTH,
  NTER_HYDROGENS,
  TERMINAL_OXYGENS,
  TETRAHEDRAL_ANGLE,
)
from hbenergy.log import logger
from hbenergy.structure import AtomRecord, find_atom, residue_runs

CARBONYL_OXYGENS = ("O", "OT1", "O1")
COLLINEAR_TOLERANCE = 1e-6


### FUNCTIONS ###
def xyz_rotate_around(p: np.ndarray, axis_from: np.ndarray, axis_to: np.ndarray, angle: float) -> np.ndarray:
  """Rotate a point around an axis defined by two points.

  Parameters:
    p: Point to rotate
    axis_from: First point on the rotation axis
    axis_to: Second point on the rotation axis
    angle: Rotation angle in radians

  Returns:
    The rotated point

  """
  s = math.sin(angle)
  c = math.cos(angle)
  n = axis_from - axis_to
  norm = np.linalg.norm(n)
  if norm < 1e-12:
    return p.copy()
  n = n / norm
  result = p - axis_from
  m = np.array(
    [
      [n[0] * n[0] + (1 - n[0] * n[0]) * c, n[0] * n[1] * (1 - c) - n[2] * s, n[0] * n[2] * (1 - c) + n[1] * s],
      [n[0] * n[1] * (1 - c) + n[2] * s, n[1] * n[1] + (1 - n[1] * n[1]) * c, n[1] * n[2] * (1 - c) - n[0] * s],
      [n[0] * n[2] * (1 - c) - n[1] * s, n[1] * n[2] * (1 - c) + n[0] * s, n[2] * n[2] + (1 - n[2] * n[2]) * c],
    ],
    dtype=float,
  )
  return result @ m + axis_from


def xyz_angle(v1: np.ndarray, v2: np.ndarray) -> float:
  """Return the angle between two vectors in radians."""
  norm = np.linalg.norm(v1) * np.linalg.norm(v2)
  if norm < 1e-12:
    return 0.0
  return math.acos(max(-1.0, min(1.0, float(np.dot(v1, v2) / norm))))


def place_atom(a: np.ndarray, b: np.ndarray, c: np.ndarray, length: float, angle: float, torsion: float) -> np.ndarray:
  """Place atom D bonded to C from internal coordinates.

  Parameters:
    a: Coordinates of atom A
    b: Coordinates of atom B
    c: Coordinates of atom C
    length: C-D bond length in Å
    angle: B-C-D angle in radians
    torsion: A-B-C-D torsion in radians

  Returns:
    Coordinates of atom D

  Raises:
    ValueError: If A, B and C are collinear

  """
  ba = b - a
  bc = b - c
  ba_x_bc = np.cross(ba, bc)
  if np.linalg.norm(ba_x_bc) < 1e-12:
    raise ValueError("Reference atoms are collinear")
  angle_abc = xyz_angle(ba, bc)
  d = xyz_rotate_around(a, b, ba_x_bc + b, angle - (math.pi - angle_abc))
  d = xyz_rotate_around(d, b, c, torsion)
  d = d - b
  return d / np.linalg.norm(d) * length + c


def _unit(v: np.ndarray) -> np.ndarray:
  return v / np.linalg.norm(v)


def _perpendicular_point(n: np.ndarray, ca: np.ndarray) -> np.ndarray:
  # stand-in torsion reference when there is no usable carbonyl carbon
  axis = _unit(n - ca)
  helper = np.array([1.0, 0.0, 0.0]) if abs(axis[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
  return ca + np.cross(axis, helper)


def amine_hydrogens(n: np.ndarray, ca: np.ndarray, c: Optional[np.ndarray] = None) -> List[np.ndarray]:
  """Positions of the three hydrogens of a terminal NH3+ group, staggered about the N-CA bond.
  The carbonyl carbon sets the torsion reference, an arbitrary perpendicular
  is used instead when it is missing or lies on the N-CA line."""
  ref = c
  if ref is None or np.linalg.norm(np.cross(ref - ca, n - ca)) < COLLINEAR_TOLERANCE:
    ref = _perpendicular_point(n, ca)
  h1 = place_atom(ref, ca, n, NH_BOND_LENGTH, math.radians(TETRAHEDRAL_ANGLE), math.pi)
  h2 = xyz_rotate_around(h1, n, ca, 2 * math.pi / 3)
  h3 = xyz_rotate_around(h1, n, ca, -2 * math.pi / 3)
  return [h1, h2, h3]


def proline_hydrogens(n: np.ndarray, ca: np.ndarray, cd: np.ndarray) -> List[np.ndarray]:
  """Positions of the two hydrogens of a terminal proline NH2+ group."""
  positions = []
  for angle in (2 * math.pi / 3, -2 * math.pi / 3):
    p = xyz_rotate_around(cd, n, ca, angle)
    positions.append(n + _unit(p - n) * NH_BOND_LENGTH)
  return positions


def carboxyl_oxygen(ca: np.ndarray, c: np.ndarray, o: np.ndarray) -> np.ndarray:
  """Position of the second carboxyl oxygen, in the CA-C-O plane, opposite the bisector of CA-C-O."""
  direction = -(_unit(ca - c) + _unit(o - c))
  return c + _unit(direction) * CO_BOND_LENGTH

def _fullname(name: str) -> str:
  return f" {name:<3}" if len(name) < 4 else name


def _rename(atom: AtomRecord, name: str) -> AtomRecord:
  return replace(atom, name=name, fullname=_fullname(name))


def _check_style(style: str):
  if style not in CAP_STYLES:
    raise ValueError(f'Unknown capping style "{style}". Must be one of {sorted(CAP_STYLES)}.')


def add_nter_hydrogens(fragment: Sequence[AtomRecord], style: str = "charmm") -> List[AtomRecord]:
  """Adds N-terminal hydrogens to the first residue of a fragment.
  Amide hydrogens already present are replaced. New hydrogens are
  inserted directly after the backbone nitrogen.

  Parameters:
    fragment: Atoms in N to C order on a single chain
    style: Hydrogen naming convention, ``charmm`` or ``standard``

  Returns:
    A new list of atoms; the input is left untouched

  """
  _check_style(style)
  runs = residue_runs(fragment)
  if not runs:
    return list(fragment)
  start, end = runs[0]
  residue = list(fragment[start:end])

  n = find_atom(residue, "N")
  ca = find_atom(residue, "CA")
  if n is None or ca is None:
    logger.warning(f"Residue {residue[0].key} has no N or CA atom, N terminus left uncapped.")
    return list(fragment)

  names = NTER_HYDROGENS[style]
  if residue[0].res_name == "PRO":
    cd = find_atom(residue, "CD")
    if cd is None:
      logger.warning(f"Proline {residue[0].key} has no CD atom, N terminus left uncapped.")
      return list(fragment)
    positions = proline_hydrogens(n.xyz, ca.xyz, cd.xyz)
  else:
    c = find_atom(residue, "C")
    positions = amine_hydrogens(n.xyz, ca.xyz, c.xyz if c is not None else None)

  hydrogens = [
    replace(_rename(n, name), coord=tuple(float(v) for v in pos), element="H", serial=0) for name, pos in zip(names, positions)
  ]
  kept = [atom for atom in residue if atom.name not in AMIDE_HYDROGENS]
  at = kept.index(n) + 1
  capped = kept[:at] + hydrogens + kept[at:]
  return list(fragment[:start]) + capped + list(fragment[end:])


def fix_cter(fragment: Sequence[AtomRecord], style: str = "charmm") -> List[AtomRecord]:
  """Completes the carboxyl group of the last residue of a fragment.
  The carbonyl oxygen is renamed and the second terminal oxygen is either
  renamed (when already present) or built and appended to the residue.

  Parameters:
    fragment: Atoms in N to C order on a single chain
    style: Oxygen naming convention, ``charmm`` or ``standard``

  Returns:
    A new list of atoms; the input is left untouched

  """
  _check_style(style)
  runs = residue_runs(fragment)
  if not runs:
    return list(fragment)
  start, end = runs[-1]
  residue = list(fragment[start:end])

  ca = find_atom(residue, "CA")
  c = find_atom(residue, "C")
  o = next((atom for name in CARBONYL_OXYGENS for atom in residue if atom.name == name), None)
  if ca is None or c is None or o is None:
    logger.warning(f"Residue {residue[0].key} has no CA, C or O atom, C terminus left uncapped.")
    return list(fragment)

  o1_name, o2_name = CTER_OXYGENS[style]
  second = next((atom for atom in residue if atom.name in TERMINAL_OXYGENS and atom is not o), None)
  capped = []
  for atom in residue:
    if atom is o:
      capped.append(_rename(atom, o1_name))
    elif atom is second:
      capped.append(_rename(atom, o2_name))
    else:
      capped.append(atom)
  if second is None:
    pos = carboxyl_oxygen(ca.xyz, c.xyz, o.xyz)
    capped.append(replace(_rename(o, o2_name), coord=tuple(float(v) for v in pos), serial=0))
  return list(fragment[:start]) + capped + list(fragment[end:])


def cap(fragment: Sequence[AtomRecord], style: str = "charmm") -> List[AtomRecord]:
  """Caps both termini of a fragment.

  Parameters:
    fragment: Atoms in N to C order on a single chain
    style: Naming convention, ``charmm`` (HT1-HT3, OT1/OT2) or ``standard`` (H1-H3, O/OXT)

  Returns:
    The capped fragment, on the same chain as the input

  """
  return fix_cter(add_nter_hydrogens(fragment, style), style)

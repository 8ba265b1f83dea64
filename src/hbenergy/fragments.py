"""
Cuts the donor and acceptor residues of a hydrogen bond out of a structure.

When the two residues are joined by a peptide bond they are fused into one
chain and capped once; otherwise each residue is copied onto its own chain
and capped on its own.
"""

import enum
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from hbenergy.capping import cap
from hbenergy.constants import (
  ACCEPTOR_CHAIN,
  BACKBONE_C,
  BACKBONE_N,
  DONOR_CHAIN,
  FUSED_CHAIN,
  PEPTIDE_CUTOFF_SQ,
)
from hbenergy.hbonds import HBond
from hbenergy.log import logger
from hbenergy.structure import AtomRecord, Structure, find_atom, find_next_residue_boundary

Fragment = List[AtomRecord]


### CLASSES ###
class Linkage(enum.Enum):
  """How the donor and acceptor residues of a bond are connected."""

  UNLINKED = "unlinked"
  # acceptor C bonded to donor N, the acceptor comes first in the chain
  ACCEPTOR_DONOR = "acceptor-donor"
  # donor C bonded to acceptor N, the donor comes first in the chain
  DONOR_ACCEPTOR = "donor-acceptor"


### FUNCTIONS ###
def distance_sq(atom1: Optional[AtomRecord], atom2: Optional[AtomRecord]) -> float:
  """Squared distance between two atoms, infinite when either is missing."""
  if atom1 is None or atom2 is None:
    return float("inf")
  diff = np.asarray(atom1.coord) - np.asarray(atom2.coord)
  return float(np.dot(diff, diff))


def detect_link(donor: Sequence[AtomRecord], acceptor: Sequence[AtomRecord], cutoff_sq: float = PEPTIDE_CUTOFF_SQ) -> Linkage:
  """Decides whether two residues are joined by a peptide bond.

  The backbone carbon of each residue is compared against the backbone
  nitrogen of the other. A squared C-N distance strictly below
  ``cutoff_sq`` means the residues are bonded. A residue missing its C
  or N atom cannot form that bond.

  Parameters:
    donor: Atoms of the donor residue
    acceptor: Atoms of the acceptor residue
    cutoff_sq: Squared bond length cutoff in Å^2

  Returns:
    The linkage between the two residues

  """
  donor_c = find_atom(donor, BACKBONE_C)
  donor_n = find_atom(donor, BACKBONE_N)
  acceptor_c = find_atom(acceptor, BACKBONE_C)
  acceptor_n = find_atom(acceptor, BACKBONE_N)

  if distance_sq(acceptor_c, donor_n) < cutoff_sq:
    return Linkage.ACCEPTOR_DONOR
  if distance_sq(donor_c, acceptor_n) < cutoff_sq:
    return Linkage.DONOR_ACCEPTOR
  return Linkage.UNLINKED


def copy_residue(atoms: Sequence[AtomRecord], start: int, chain: str) -> Fragment:
  """Copies the residue starting at ``start`` onto chain ``chain``.

  Parameters:
    atoms: Atom records in structural order
    start: Index of the residue's first atom
    chain: Chain ID given to every copied atom

  Returns:
    New atom records, independent of ``atoms``

  """
  end = find_next_residue_boundary(atoms, start)
  return [replace(atom, chain=chain) for atom in atoms[start:end]]


def fuse(fragment_a: Sequence[AtomRecord], fragment_b: Sequence[AtomRecord]) -> Fragment:
  """Joins two fragments into one chain, atoms of ``fragment_a`` first."""
  return list(fragment_a) + list(fragment_b)


def build_fragments(
  structure: Structure,
  hbond: HBond,
  capper: Callable[[Sequence[AtomRecord]], Fragment] = cap,
) -> Tuple[Optional[Fragment], Optional[Fragment], Linkage]:
  """Builds the capped fragments for one hydrogen bond.

  Bonded residues are fused on chain ``X`` and returned in the slot of
  the residue that comes first, the other slot being ``None``. Unbonded
  residues are returned separately on chains ``D`` and ``A``.

  Parameters:
    structure: Full structure containing both residues
    hbond: Hydrogen bond whose residues are extracted
    capper: Callable that caps a fragment's termini

  Returns:
    ``(donor_fragment, acceptor_fragment, linkage)``

  Raises:
    ResidueNotFoundError: If the donor or acceptor residue does not exist

  """
  donor_start, donor_end = structure.residue(hbond.donor, role="donor", spec=hbond.donor_spec)
  acceptor_start, acceptor_end = structure.residue(hbond.acceptor, role="acceptor", spec=hbond.acceptor_spec)
  atoms = structure.atoms

  linkage = detect_link(atoms[donor_start:donor_end], atoms[acceptor_start:acceptor_end])
  logger.debug(f"HBond {hbond.index}: {hbond} is {linkage.value}")

  if linkage is Linkage.ACCEPTOR_DONOR:
    fused = fuse(copy_residue(atoms, acceptor_start, FUSED_CHAIN), copy_residue(atoms, donor_start, FUSED_CHAIN))
    return None, capper(fused), linkage
  if linkage is Linkage.DONOR_ACCEPTOR:
    fused = fuse(copy_residue(atoms, donor_start, FUSED_CHAIN), copy_residue(atoms, acceptor_start, FUSED_CHAIN))
    return capper(fused), None, linkage

  donor = capper(copy_residue(atoms, donor_start, DONOR_CHAIN))
  acceptor = capper(copy_residue(atoms, acceptor_start, ACCEPTOR_CHAIN))
  return donor, acceptor, linkage

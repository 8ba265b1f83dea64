"""
Atom level view of a protein structure used by the energy pipeline.

Coordinates are read with BioPython and flattened into an ordered,
read-only sequence of :obj:`AtomRecord` objects. A residue is a maximal
run of consecutive atoms sharing chain, residue number and insertion code,
so residues are addressed by index ranges into that sequence.
"""

import io
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
from Bio.PDB import PDBIO, PDBParser
from Bio.PDB.Atom import Atom
from Bio.PDB.Chain import Chain
from Bio.PDB.Model import Model
from Bio.PDB.PDBExceptions import PDBConstructionException
from Bio.PDB.Residue import Residue
from Bio.PDB.Structure import Structure as BioStructure

from hbenergy.errors import FragmentError, InputError, ResidueNotFoundError
from hbenergy.hbonds import ResidueKey
from hbenergy.log import logger


### CLASSES ###
@dataclass(frozen=True)
class AtomRecord:
  """A single atom together with the residue it belongs to.

  Attributes:
    name: Atom name without padding, e.g. ``CA``
    fullname: Four character atom name as positioned in the PDB file, e.g. `` CA ``
    res_name: Residue name, e.g. ``SER``
    res_seq: Residue sequence number
    chain: Chain ID, a single space when unlabelled
    insertion: Insertion code, a single space when there is none
    coord: Cartesian coordinates in Å
    element: Element symbol
    hetflag: BioPython hetero flag of the residue, a single space for standard residues
    occupancy: Occupancy
    bfactor: Temperature factor
    serial: Atom serial number
  """

  name: str
  fullname: str
  res_name: str
  res_seq: int
  chain: str
  insertion: str
  coord: Tuple[float, float, float]
  element: str = ""
  hetflag: str = " "
  occupancy: float = 1.0
  bfactor: float = 0.0
  serial: int = 0

  @property
  def key(self) -> ResidueKey:
    return ResidueKey(self.chain, self.res_seq, self.insertion)

  @property
  def xyz(self) -> np.ndarray:
    return np.array(self.coord, dtype=float)


class Structure:
  def __init__(self, atoms: Iterable[AtomRecord], title: str = "Untitled Structure"):
    """Read-only, ordered collection of atom records.

    Loaded once per run (see :obj:`Structure.from_pdb`) and passed to
    every bond evaluation. Nothing in the energy pipeline modifies it.

    Parameters:
      atoms: Atom records in structural order
      title: Name shown in log messages

    """
    self.atoms = tuple(atoms)
    self.title = title

  @classmethod
  def from_pdb(cls, pdb: Union[str, os.PathLike, io.IOBase]) -> "Structure":
    """Loads the first model of a PDB file.
    Alternate locations are resolved by BioPython, which keeps
    the location with the highest occupancy.

    Parameters:
      pdb: Path to, or open text handle of, a PDB file with hydrogens

    Returns:
      The loaded structure

    Raises:
      InputError: If the file cannot be read or contains no atoms

    """
    title = "Untitled Structure"
    if not isinstance(pdb, io.IOBase):
      title = os.path.basename(str(pdb))
      if not os.path.exists(pdb):
        raise InputError(f"Unable to open PDB file with hydrogens: {pdb}")

    try:
      bio_structure = PDBParser(QUIET=True).get_structure("structure", pdb)
    except (OSError, ValueError, PDBConstructionException) as e:
      raise InputError(f"Can't read atoms from PDB file {title}: {e}")

    models = list(bio_structure)
    if not models:
      raise InputError(f"Can't read atoms from PDB file {title}")

    atoms = []
    for chain in models[0]:
      for res in chain:
        hetflag, res_seq, insertion = res.id
        for atom in res:
          atoms.append(
            AtomRecord(
              name=atom.get_name(),
              fullname=atom.get_fullname(),
              res_name=res.get_resname(),
              res_seq=res_seq,
              chain=chain.id,
              insertion=insertion,
              coord=tuple(float(v) for v in atom.coord),
              element=atom.element,
              hetflag=hetflag,
              occupancy=atom.get_occupancy(),
              bfactor=atom.get_bfactor(),
              serial=atom.get_serial_number() or 0,
            )
          )
    if not atoms:
      raise InputError(f"Can't read atoms from PDB file {title}")

    logger.info(f"Loaded {len(atoms)} atoms from {title}.")
    return cls(atoms, title=title)

  def __repr__(self):
    return f"<hbenergy Structure: Title={self.title} Atoms={len(self.atoms)}>"

  def __len__(self):
    return len(self.atoms)

  def __getitem__(self, index):
    return self.atoms[index]

  def residue(self, key: ResidueKey, role: str = "residue", spec: Optional[str] = None) -> Tuple[int, int]:
    """Returns the index range of a residue.

    Parameters:
      key: Residue to look up
      role: Name of the residue's role (``donor`` or ``acceptor``) used in the error message
      spec: Residue specifier as written in the input, defaults to ``str(key)``

    Returns:
      ``(start, end)`` such that ``self.atoms[start:end]`` are the residue's atoms

    Raises:
      ResidueNotFoundError: If the residue is not part of the structure

    """
    start = find_residue(self.atoms, key.chain, key.res_seq, key.insertion)
    if start is None:
      raise ResidueNotFoundError(role, spec if spec is not None else str(key))
    return start, find_next_residue_boundary(self.atoms, start)


### FUNCTIONS ###
def find_residue(atoms: Sequence[AtomRecord], chain: str, res_seq: int, insertion: str = " ") -> Optional[int]:
  """Finds the first atom of a residue.

  Parameters:
    atoms: Atom records in structural order
    chain: Chain ID of the residue
    res_seq: Residue sequence number
    insertion: Insertion code of the residue

  Returns:
    Index of the first atom of the first matching residue, or ``None`` if there is none

  """
  for i, atom in enumerate(atoms):
    if atom.chain == chain and atom.res_seq == res_seq and atom.insertion == insertion:
      return i
  return None


def find_next_residue_boundary(atoms: Sequence[AtomRecord], start: int) -> int:
  """Returns the index one past the last atom of the residue starting at ``start``."""
  key = atoms[start].key
  end = start + 1
  while end < len(atoms) and atoms[end].key == key:
    end += 1
  return end


def find_atom(atoms: Sequence[AtomRecord], name: str) -> Optional[AtomRecord]:
  """Returns the first atom called exactly ``name``, or ``None``."""
  for atom in atoms:
    if atom.name == name:
      return atom
  return None


def residue_runs(atoms: Sequence[AtomRecord]) -> List[Tuple[int, int]]:
  """Splits a sequence of atoms into ``(start, end)`` index ranges, one per residue."""
  runs = []
  start = 0
  while start < len(atoms):
    end = find_next_residue_boundary(atoms, start)
    runs.append((start, end))
    start = end
  return runs


def to_bio_structure(fragments: Iterable[Optional[Sequence[AtomRecord]]]) -> BioStructure:
  """Builds a BioPython structure with one chain per fragment.
  ``None`` fragments are skipped. Every fragment must use a single chain ID.

  Raises:
    FragmentError: If two fragments share a chain ID, or a chain holds the same residue twice

  """
  structure = BioStructure("fragments")
  model = Model(0)
  structure.add(model)

  for fragment in fragments:
    if not fragment:
      continue
    chain_id = fragment[0].chain
    chain = Chain(chain_id)
    try:
      model.add(chain)
      for start, end in residue_runs(fragment):
        first = fragment[start]
        res = Residue((first.hetflag, first.res_seq, first.insertion), first.res_name, "    ")
        chain.add(res)
        for atom in fragment[start:end]:
          if atom.chain != chain_id:
            raise FragmentError(f"Fragment mixes chains {chain_id!r} and {atom.chain!r}")
          res.add(
            Atom(
              atom.name,
              np.array(atom.coord, dtype="f"),
              atom.bfactor,
              atom.occupancy,
              " ",
              atom.fullname,
              atom.serial,
              element=atom.element or None,
            )
          )
    except PDBConstructionException as e:
      raise FragmentError(f"Unable to build coordinates for chain {chain_id}: {e}")

  return structure


def write_pdb(fpath: Union[str, os.PathLike], fragments: Iterable[Optional[Sequence[AtomRecord]]]):
  """Writes fragments to a PDB file, one chain per fragment, in the order given.
  Will overwrite any existing file.

  Parameters:
    fpath: Output file path
    fragments: Atom sequences to write, ``None`` entries are skipped

  """
  pdbio = PDBIO()
  pdbio.set_structure(to_bio_structure(fragments))
  pdbio.save(str(fpath))

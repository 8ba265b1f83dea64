"""
Calculates the interaction energy of hydrogen bonded residue pairs.

For every hydrogen bond the donor and acceptor residues are located in the
structure, cut out (fused when they are peptide bonded), capped, written to a
scratch PDB file and evaluated with ecalc. Scratch files are named after the
process ID and always removed before the next bond is evaluated.

A bond whose residues are missing, or that ecalc fails on, is reported and
skipped. Problems with the scratch files themselves abort the run.
"""

import math
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Sequence, Union

import pandas as pd
from tqdm import tqdm

from hbenergy.capping import cap
from hbenergy.constants import CAP_STYLES
from hbenergy.ecalc import check_mode, write_control_file
from hbenergy.errors import EvaluatorError, FragmentError, ResidueNotFoundError, ScratchIOError
from hbenergy.fragments import Fragment, Linkage, build_fragments
from hbenergy.hbonds import HBond, is_sidechain_bond
from hbenergy.log import logger
from hbenergy.structure import AtomRecord, Structure, write_pdb

# evaluator(pdb_file, control_file or None, output_file) -> energy
Evaluator = Callable[[Path, Optional[Path], Path], float]
Capper = Callable[[Sequence[AtomRecord]], Fragment]

RESULT_COLUMNS = ["index", "donor", "donor_atom", "acceptor", "acceptor_atom", "bond_type", "linkage", "energy", "status"]


### CLASSES ###
@dataclass(frozen=True)
class EnergyOptions:
  """Settings shared by every bond of a run.

  Attributes:
    mode: ``default`` single point energy, ``relax`` to relax first, ``hbonds`` for the hydrogen bond potential only
    process_all: Evaluate every bond instead of only sidechain-sidechain bonds without OXT
    use_control_file: Drive ecalc with a control file, ``False`` uses ``ecalc -p`` (``default`` mode only)
    cap_style: Terminal atom naming, ``charmm`` or ``standard``
    scratch_dir: Directory for scratch files, defaults to the system temporary directory
  """

  mode: str = "default"
  process_all: bool = False
  use_control_file: bool = True
  cap_style: str = "charmm"
  scratch_dir: Optional[str] = None

  def __post_init__(self):
    check_mode(self.mode)
    if self.cap_style not in CAP_STYLES:
      raise ValueError(f'Unknown capping style "{self.cap_style}". Must be one of {sorted(CAP_STYLES)}.')
    if not self.use_control_file and self.mode != "default":
      raise ValueError(f'Energy mode "{self.mode}" requires a control file.')


@dataclass
class BondEnergy:
  """Outcome of evaluating one hydrogen bond."""

  hbond: HBond
  energy: float = math.nan
  linkage: Optional[Linkage] = None
  error: Optional[str] = None

  @property
  def ok(self) -> bool:
    return self.error is None

  def __str__(self):
    return f"HBond {self.hbond.index} Energy: {self.energy:.6f}"


@dataclass(frozen=True)
class ScratchFiles:
  pdb: Path
  output: Path
  control: Optional[Path] = None

  def __iter__(self):
    return iter(p for p in (self.pdb, self.output, self.control) if p is not None)


### FUNCTIONS ###
@contextmanager
def scratch_files(scratch_dir: Optional[Union[str, os.PathLike]] = None, control: bool = True) -> Iterator[ScratchFiles]:
  """Provides the process ID based scratch file names for one evaluation
  and deletes whichever of them exist once the block exits, however it exits.

  Parameters:
    scratch_dir: Directory for the files, defaults to the system temporary directory
    control: Whether a control file name is needed

  """
  pid = os.getpid()
  root = Path(scratch_dir if scratch_dir is not None else tempfile.gettempdir()).resolve()
  files = ScratchFiles(
    pdb=root / f"{pid}.pdh",
    output=root / f"{pid}.ec",
    control=root / f"control.dat.{pid}" if control else None,
  )
  try:
    yield files
  finally:
    for fpath in files:
      fpath.unlink(missing_ok=True)


def calc_bond_energy(
  structure: Structure,
  hbond: HBond,
  evaluator: Evaluator,
  options: EnergyOptions = EnergyOptions(),
  capper: Optional[Capper] = None,
) -> BondEnergy:
  """Calculates the energy of one hydrogen bonded residue pair.

  Parameters:
    structure: Structure containing both residues
    hbond: Hydrogen bond to evaluate
    evaluator: Callable running the energy program, usually an :obj:`hbenergy.ecalc.ECalc`
    options: Run settings
    capper: Callable capping a fragment, defaults to :obj:`hbenergy.capping.cap` in ``options.cap_style``

  Returns:
    The bond's energy and linkage

  Raises:
    ResidueNotFoundError: If the donor or acceptor residue does not exist
    FragmentError: If the fragments cannot be written as a PDB file
    EvaluatorError: If the energy program fails or reports no energy
    ScratchIOError: If a scratch file cannot be written

  """
  if capper is None:
    capper = partial(cap, style=options.cap_style)
  donor, acceptor, linkage = build_fragments(structure, hbond, capper=capper)

  with scratch_files(options.scratch_dir, control=options.use_control_file) as files:
    try:
      write_pdb(files.pdb, [donor, acceptor])
      if files.control is not None:
        write_control_file(files.control, files.pdb, options.mode)
    except OSError as e:
      raise ScratchIOError(f"Can't write temporary files for HBond {hbond.index}: {e}")
    logger.debug(f"HBond {hbond.index}: wrote {files.pdb}")

    energy = evaluator(files.pdb, files.control, files.output)

  return BondEnergy(hbond, energy=energy, linkage=linkage)


def iter_energies(
  structure: Structure,
  hbonds: Iterable[HBond],
  evaluator: Evaluator,
  options: EnergyOptions = EnergyOptions(),
  capper: Optional[Capper] = None,
  progress: bool = False,
) -> Iterator[BondEnergy]:
  """Evaluates hydrogen bonds one after another.
  Bonds rejected by the sidechain filter are skipped silently unless
  ``options.process_all`` is set. Bonds that cannot be evaluated are
  logged and yielded with their error.

  Parameters:
    structure: Structure containing the bonded residues
    hbonds: Hydrogen bonds, usually from :obj:`hbenergy.hbonds.read_hbonds`
    evaluator: Callable running the energy program
    options: Run settings
    capper: Callable capping a fragment
    progress: Show a progress bar

  Yields:
    One result per evaluated bond, in input order

  Raises:
    ScratchIOError: If a scratch file cannot be written

  """
  hbonds = list(hbonds)
  skipped = 0
  for hbond in tqdm(hbonds, desc="HBonds", unit="bond", disable=not progress):
    if not options.process_all and not is_sidechain_bond(hbond):
      skipped += 1
      continue
    try:
      yield calc_bond_energy(structure, hbond, evaluator, options=options, capper=capper)
    except (ResidueNotFoundError, FragmentError, EvaluatorError) as e:
      logger.error(f"HBond {hbond.index} ({hbond}): {e}")
      yield BondEnergy(hbond, error=str(e))

  if skipped:
    logger.info(f"Skipped {skipped} of {len(hbonds)} hydrogen bonds that are not sidechain-sidechain or involve OXT.")


def calc_energies(
  structure: Structure,
  hbonds: Iterable[HBond],
  evaluator: Evaluator,
  options: EnergyOptions = EnergyOptions(),
  capper: Optional[Capper] = None,
  progress: bool = False,
) -> pd.DataFrame:
  """Evaluates hydrogen bonds and tabulates the results.
  Takes the same parameters as :obj:`iter_energies`.

  Returns:
    One row per evaluated bond with the columns ``index``, ``donor``,
    ``donor_atom``, ``acceptor``, ``acceptor_atom``, ``bond_type``,
    ``linkage``, ``energy`` (NaN on failure) and ``status`` (``ok`` or the error message)

  """
  rows = {col: [] for col in RESULT_COLUMNS}
  for result in iter_energies(structure, hbonds, evaluator, options=options, capper=capper, progress=progress):
    hbond = result.hbond
    rows["index"].append(hbond.index)
    rows["donor"].append(hbond.donor_spec)
    rows["donor_atom"].append(hbond.donor_atom)
    rows["acceptor"].append(hbond.acceptor_spec)
    rows["acceptor_atom"].append(hbond.acceptor_atom)
    rows["bond_type"].append(hbond.bond_type)
    rows["linkage"].append(result.linkage.value if result.linkage is not None else None)
    rows["energy"].append(result.energy)
    rows["status"].append("ok" if result.ok else result.error)
  return pd.DataFrame(rows, columns=RESULT_COLUMNS)

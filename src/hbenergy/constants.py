"""
This file contains constants.
"""

## HBPlus listing
# Number of header lines at the start of an HBPlus .hb2 file
HBPLUS_HEADER_LINES = 8
# Maximum number of hydrogen bonds read from one listing
MAX_HBONDS = 10000
# Placeholder used by HBPlus for a blank chain or insertion code
BLANK_PLACEHOLDER = "-"
# Bond classification for a sidechain-sidechain hydrogen bond
SIDECHAIN_BOND_TYPE = "SS"
# Bonds to the terminal oxygen are skipped by the default filter
TERMINAL_OXYGEN = "OXT"

## Covalent linkage
# Squared C-N distance (Å^2) below which two residues are peptide bonded
PEPTIDE_CUTOFF_SQ = 3.5
# Backbone atom names used to detect a peptide bond
BACKBONE_C = "C"
BACKBONE_N = "N"

## Fragment chain labels
DONOR_CHAIN = "D"
ACCEPTOR_CHAIN = "A"
FUSED_CHAIN = "X"

## Terminal capping
CAP_STYLES = {"charmm", "standard"}
# Names given to the N-terminal hydrogens
NTER_HYDROGENS = {
  "charmm": ("HT1", "HT2", "HT3"),
  "standard": ("H1", "H2", "H3"),
}
# Names given to the two C-terminal oxygens
CTER_OXYGENS = {
  "charmm": ("OT1", "OT2"),
  "standard": ("O", "OXT"),
}
# Any of these on the first residue is an amide hydrogen that capping replaces
AMIDE_HYDROGENS = {"H", "HN", "H1", "H2", "H3", "HT1", "HT2", "HT3"}
# Any of these on the last residue already is a second terminal oxygen
TERMINAL_OXYGENS = {"OXT", "OT2", "O2"}
NH_BOND_LENGTH = 1.0
CO_BOND_LENGTH = 1.25
TETRAHEDRAL_ANGLE = 109.5

## ECalc
ECALC_BINARY = "ecalc"
ECALC_TIMEOUT = 300
ENERGY_MODES = {"default", "relax", "hbonds"}

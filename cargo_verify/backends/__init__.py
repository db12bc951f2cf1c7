"""Concrete verification backends: KLEE, SeaHorn, SMACK, direct test, mock."""

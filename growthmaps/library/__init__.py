"""Collaborators: units, HDF5 and SMAP readers, fitting."""

"""
The CONTROLLER layer orchestrates one rank's work: it partitions the domain,
drives the fields and folds them into the rank-local mesh.
"""

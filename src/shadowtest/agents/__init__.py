"""Pipeline stages: detection, target selection, synthesis, validation, repair, reporting."""

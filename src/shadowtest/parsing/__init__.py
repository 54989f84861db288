"""Source-code parsing helpers: tree-sitter syntax checks and heuristic extraction."""

"""Pure client-side rules: access gating, loan lifecycle, verification."""

"""LTI 1.1 launch, session and outcome handling."""

"""Country-level risk scoring: jump-gated daily alerts and weekly surge ratios."""

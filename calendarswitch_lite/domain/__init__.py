"""Eligibility, active/next resolution, formatting and the evaluation pipeline."""

"""
Learning Intelligence Engine Module.

This module contains the mastery-tracking algorithms:
- Per-concept Bayesian Knowledge Tracing
- Mastery classification and subject-level aggregation
- The quiz-attempt update pipeline

Constants live in learning_engine.config with documented provenance.
"""

"""
Mastery module.

Turns per-concept BKT beliefs into learner-facing signals:
- Mastered / not-mastered verdicts
- Subject aggregates (pass chance, garden health, garden stage)
- Weak-area lists for the study-plan builder
- The update service that persists beliefs after each quiz attempt
"""

"""
Query Doctor
Diagnoses ORM query logs: N+1 loads, cartesian products, JOIN problems,
hydration volume and injection risk.
"""

__version__ = '0.1.0'

"""
Fiscal Advisor - Source Package

A conversational financial assistant for barbers and independent
service workers. It answers questions about income, expenses and goals
using only figures computed from the user's own ledger.

DESIGN PRINCIPLES:
1. The model names a period, the code computes the numbers
2. Fail early, fail visibly
3. No invented figures
4. Every answered question is logged
5. Storage layer and LLM providers are swappable
"""

__version__ = "1.0.0"
__author__ = "Fiscal Advisor Team"

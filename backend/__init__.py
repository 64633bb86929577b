"""
Zinara Backend

AI-assisted oncology companion API: patient accounts, a personalized
onboarding questionnaire, and care tools built on generative AI.
"""

__version__ = "1.0.0"

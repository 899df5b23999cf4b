"""
CivicFix
AI module.

Submodules:
    - classifier: hazard image classification (Gemini + local stub, model fallback)
"""

"""
Aides eligibility engine.

Turns the flat eligibility rule table into a decision graph and drives a
step-by-step interview that ends with the aides a user may qualify for.
"""

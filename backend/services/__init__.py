"""
Domain services: providers, aggregators, bet tracking, live updates.
"""

"""
Operational scripts for the grievance service.
"""

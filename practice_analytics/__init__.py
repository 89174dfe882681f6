"""
Practice analytics: loads the practice's flat-file records, joins and
aggregates them, and builds the data behind each dashboard view.

    loader       → records → filters → aggregation → comparison → insights
                                                                  ↓
                                                                views
"""

__version__ = "1.0.0"

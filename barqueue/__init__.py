"""
                        Bar Queue

Drink order intake for a bar: orders arrive over WhatsApp, SMS and a web
menu, are checked against stock and queued for the bartenders, who run the
queue from the same messaging number or a dashboard.
"""

__version__ = "1.0.0"

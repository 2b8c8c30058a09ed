"""
nREPL client for Clojure: bencode codec, protocol client, connection
management and a Jupyter kernel built on them.
"""

__version__ = '0.2.0'

# directory_crawler/crawler/__init__.py
"""
Crawler core: URL normalization, rate gate, fetcher, extractors, traversal and runner.
"""

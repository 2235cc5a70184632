"""sitecrawl: page registration, background crawling and structural analysis."""

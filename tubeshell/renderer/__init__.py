"""
Renderer side of the shell: page contexts, renderer programs, discovery and injection.
"""

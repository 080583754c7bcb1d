"""
Job-processing core: chunking, synthesis, assembly, scheduling and cleanup.
"""

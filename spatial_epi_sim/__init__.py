"""
Spatial epi sim is a network-based model of disease spread across regions (locales) that respond to their own
surveillance data by raising or lowering alert levels.

The entry point for a simulation is :meth:`spatial_epi_sim.simulation.basicSimulation`, which runs a `Model` created by
:meth:`spatial_epi_sim.simulation.createModel`. The command line tool lives in `spatial_epi_sim.run_model`.
"""

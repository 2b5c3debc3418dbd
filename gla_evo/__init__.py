"""GLA-Evo: evolution of aging, learning and growth life histories.

An individual-based model of a population of aging, reproducing agents:
  - Mortality from an integrated growth-learning-aging hazard
  - Age-assortative or random mating with normalized fertility curves
  - Two heritable traits (aging rate b, learning capacity lmax),
    inherited as the parental mean with optional mutation
  - Capped population, independent seeded replicates
"""

__version__ = "0.1.0"

"""
labscope package entry point.
Exposes subpackages:
- data: feature matrix coercion and mean imputation
- novelty: applicability / out-of-distribution distance scoring
- metrics: imbalance-aware classification metrics and costs
- modelling: classifier adapter and decision-threshold tuning
- rca: SHAP and partial-dependence explanation tables
- utils: artifact paths and model persistence
"""

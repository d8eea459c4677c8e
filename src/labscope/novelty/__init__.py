"""
Applicability / out-of-distribution scoring against a reference population.

- mahalanobis: covariance-based distance (fit_reference, score_mahalanobis)
- pcaindex: projection-based residual distance (fit_projection, score_projection)
- percentile: percentile ranks against reference self-scores, OOD flags
"""
from labscope.novelty.mahalanobis import (MahalanobisIndex, ReferenceModel,
                                          fit_reference, mahalanobis_pvalue,
                                          score_mahalanobis)
from labscope.novelty.pcaindex import (PCAIndex, ProjectionModel,
                                       fit_projection, project,
                                       score_in_plane, score_projection)
from labscope.novelty.percentile import (flag_out_of_distribution,
                                         ood_threshold, percentile_rank,
                                         percentile_ranks)

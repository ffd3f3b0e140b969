"""
machinewatch.ml — Anomaly Detection Pipeline for Industrial Machines
=====================================================================

This package implements the autoencoder-based anomaly detection pipeline
behind the MachineWatch monitoring dashboard.

Architecture:
    Machine sensors → plant historian / CSV export → Dashboard (UI)
                                                        ↓
                                                Python ML Service
                                                        ↓
                                            Anomaly Detection Pipeline:
                                              1. Feature Normalization
                                              2. Data Quality Validation   (training)
                                              3. Autoencoder Training      (training)
                                              4. Reconstruction Scoring    (inference)
                                              5. Severity Classification   (inference)
                                                        ↓
                                  AnomalyRecord (risk score, severity, factors)

Modules:
    config              — Channel domains, hyperparameters and thresholds
    schemas             — SensorReading, AnomalyRecord, TrainingStatus
    errors              — Error taxonomy
    feature_engineering — Reading → bounded feature vector
    preprocessing       — Pre-training data quality checks
    model               — Autoencoder layer plan and Keras builder
    store               — Model artifact persistence and ModelHandle
    train               — Autoencoder training
    scoring             — Reconstruction error scoring
    classifier          — Risk score, severity and contributing factors
    records             — Bounded anomaly record log
    sources             — CSV / JSON reading source
    inference           — AnomalyDetectionService facade
    ml_service          — Flask HTTP service
    utils               — Logging setup and shared helpers
"""

__version__ = "1.0.0"
__author__ = "MachineWatch Team"

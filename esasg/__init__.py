"""Operations agents for Elasticsearch clusters running on EC2 auto scaling groups."""

__version__ = "2.0.0"

from setuptools import setup, find_packages

setup(
    name="waf-watch",
    version="0.1.0",
    description="Detect and alert on AWS WAF Web ACL configuration changes",
    packages=find_packages(include=["wafwatch", "wafwatch.*", "simulation"]),
    install_requires=[
        "boto3>=1.34.0",
        "botocore>=1.34.0",
        "PyYAML>=6.0",
        "aws-cdk-lib>=2.130.0",
        "constructs>=10.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-mock>=3.11.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
            "freezegun>=1.2.0",
        ],
    },
    python_requires=">=3.9",
)

"""IAM policy documents granting access to study prefixes."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

READ_ACTIONS = [
    "s3:GetObject",
    "s3:GetObjectTagging",
    "s3:GetObjectTorrent",
    "s3:GetObjectVersion",
    "s3:GetObjectVersionTagging",
    "s3:GetObjectVersionTorrent",
]

WRITE_ACTIONS = [
    "s3:AbortMultipartUpload",
    "s3:ListMultipartUploadParts",
    "s3:PutObject",
    "s3:PutObjectAcl",
    "s3:PutObjectTagging",
    "s3:PutObjectVersionTagging",
    "s3:DeleteObject",
    "s3:DeleteObjectTagging",
    "s3:DeleteObjectVersion",
    "s3:DeleteObjectVersionTagging",
]

KMS_ACTIONS = ["kms:Decrypt", "kms:DescribeKey", "kms:Encrypt", "kms:GenerateDataKey", "kms:ReEncrypt*"]


def to_s3_arn(bucket: str, folder: str, aws_partition: str = "aws") -> str:
    """``arn:aws:s3:::bucket/prefix/``; the bucket root (``/``) maps to ``bucket/``."""
    prefix = "" if folder == "/" else folder
    return f"arn:{aws_partition}:s3:::{bucket}/{prefix}"


def to_bucket_arn(bucket: str, aws_partition: str = "aws") -> str:
    return f"arn:{aws_partition}:s3:::{bucket}"


class StudyPolicy:
    """Collects studies and renders one policy document for all of them."""

    def __init__(self):
        # keyed by the prefix arn
        self.studies: Dict[str, Dict[str, Any]] = {}

    def add_study(
        self,
        bucket: str,
        folder: str,
        read: bool = True,
        write: bool = False,
        kms_arn: Optional[str] = None,
        aws_partition: str = "aws",
    ) -> None:
        if not bucket or not folder:
            raise ValueError("A study needs both a bucket and a folder to be added to a policy")
        if not read and not write:
            raise ValueError(f"Study folder {folder} must grant read or write access")

        prefix_arn = to_s3_arn(bucket, folder, aws_partition)
        self.studies[prefix_arn] = {
            "bucket_arn": to_bucket_arn(bucket, aws_partition),
            "prefix": folder,
            "prefix_arn": prefix_arn,
            "kms_arn": kms_arn,
            "read": read,
            "write": write,
        }

    def to_policy_doc(self) -> Dict[str, Any]:
        studies = list(self.studies.values())
        readonly = [s for s in studies if s["read"] and not s["write"]]
        readwrite = [s for s in studies if s["read"] and s["write"]]
        writeonly = [s for s in studies if s["write"] and not s["read"]]
        statements: List[Dict[str, Any]] = []

        if readonly:
            statements.append({
                "Sid": "S3StudyReadAccess",
                "Effect": "Allow",
                "Action": READ_ACTIONS,
                "Resource": [f"{s['prefix_arn']}*" for s in readonly],
            })
        if readwrite:
            statements.append({
                "Sid": "S3StudyReadWriteAccess",
                "Effect": "Allow",
                "Action": READ_ACTIONS + WRITE_ACTIONS,
                "Resource": [f"{s['prefix_arn']}*" for s in readwrite],
            })
        if writeonly:
            statements.append({
                "Sid": "S3StudyWriteAccess",
                "Effect": "Allow",
                "Action": WRITE_ACTIONS,
                "Resource": [f"{s['prefix_arn']}*" for s in writeonly],
            })

        by_bucket: Dict[str, List[Dict[str, Any]]] = {}
        for study in studies:
            by_bucket.setdefault(study["bucket_arn"], []).append(study)
        for counter, (bucket_arn, bucket_studies) in enumerate(by_bucket.items(), start=1):
            statements.append({
                "Sid": f"studyListS3Access{counter}",
                "Effect": "Allow",
                "Action": ["s3:ListBucket", "s3:ListBucketVersions"],
                "Resource": bucket_arn,
                "Condition": {
                    "StringLike": {
                        # a whole-bucket study lists with "*", not "/*"
                        "s3:prefix": ["*" if s["prefix"] == "/" else f"{s['prefix']}*" for s in bucket_studies],
                    },
                },
            })

        kms_arns = sorted({s["kms_arn"] for s in studies if s["kms_arn"]})
        if kms_arns:
            statements.append({
                "Sid": "studyKMSAccess",
                "Effect": "Allow",
                "Action": KMS_ACTIONS,
                "Resource": kms_arns,
            })

        if not statements:
            return {}
        return {"Version": "2012-10-17", "Statement": statements}

"""
partition_demo
==============
Inserts users into the partitioned ``tbl_users`` table through a primary
database and reads them back from randomly chosen read replicas.
"""

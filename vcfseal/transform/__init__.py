# Transform Module
"""
Encryption and decryption passes over VCF streams:
- TransformEngine: encrypt targeted FORMAT fields, widen their Type
- Decryptor: decrypt them and restore the original Type
- Type map persistence for the original Types
"""

from .pipeline import EngineState, RecordFailure, TransformConfig, TransformResult

from .encryptor import TransformEngine, encrypt_vcf, encrypt_vcf_file

from .decryptor import Decryptor, decrypt_vcf, decrypt_vcf_file

from .type_map import dumps_type_map, loads_type_map, save_type_map, load_type_map

__all__ = [
    'EngineState',
    'RecordFailure',
    'TransformConfig',
    'TransformResult',
    'TransformEngine',
    'encrypt_vcf',
    'encrypt_vcf_file',
    'Decryptor',
    'decrypt_vcf',
    'decrypt_vcf_file',
    'dumps_type_map',
    'loads_type_map',
    'save_type_map',
    'load_type_map',
]
